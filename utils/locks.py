import threading
from contextlib import contextmanager


class KeyedLock:
    """
    One lock per key (user id, normalized email, ...). Entries are reference
    counted so the map does not grow with every key ever seen.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}

    @contextmanager
    def hold(self, key):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1

        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self):
        with self._guard:
            return len(self._locks)


user_locks = KeyedLock()
email_code_locks = KeyedLock()
challenge_locks = KeyedLock()
