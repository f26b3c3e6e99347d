"""Per-phone lock registry."""
import threading
import time

from vinhopay.conversation.locks import PhoneLockRegistry


def test_same_phone_is_mutually_exclusive():
    locks = PhoneLockRegistry()
    inside = []
    overlaps = []

    def worker():
        with locks.lock("5511999990000"):
            if inside:
                overlaps.append(True)
            inside.append(1)
            time.sleep(0.01)
            inside.pop()

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert overlaps == []
    assert len(locks) == 0


def test_different_phones_do_not_block_each_other():
    locks = PhoneLockRegistry()
    other_done = threading.Event()

    def other():
        with locks.lock("5511999991111"):
            other_done.set()

    with locks.lock("5511999990000"):
        t = threading.Thread(target=other)
        t.start()
        assert other_done.wait(timeout=2)
        t.join()
        assert len(locks) == 1

    assert len(locks) == 0


def test_entry_released_after_exception():
    locks = PhoneLockRegistry()
    try:
        with locks.lock("5511999990000"):
            raise RuntimeError("handler failed")
    except RuntimeError:
        pass

    assert len(locks) == 0
    with locks.lock("5511999990000"):
        assert len(locks) == 1
