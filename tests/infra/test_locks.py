from __future__ import annotations

from threading import Event, Thread

from gsm_harvester.infra import ReadWriteLock


def test_readers_share_the_lock() -> None:
    lock = ReadWriteLock()
    inside = Event()

    def reader() -> None:
        with lock.read():
            inside.set()

    with lock.read():
        thread = Thread(target=reader)
        thread.start()
        assert inside.wait(1)
    thread.join(1)


def test_writer_waits_for_readers() -> None:
    lock = ReadWriteLock()
    written = Event()

    def writer() -> None:
        with lock.write():
            written.set()

    lock.acquire_read()
    thread = Thread(target=writer)
    thread.start()
    assert not written.wait(0.1)
    lock.release_read()
    assert written.wait(1)
    thread.join(1)


def test_waiting_writer_blocks_new_readers() -> None:
    lock = ReadWriteLock()
    order: list[str] = []
    writer_started = Event()

    def writer() -> None:
        writer_started.set()
        with lock.write():
            order.append("writer")

    def reader() -> None:
        with lock.read():
            order.append("reader")

    lock.acquire_read()
    writer_thread = Thread(target=writer)
    writer_thread.start()
    writer_started.wait(1)
    while not lock._writers_waiting:
        pass
    reader_thread = Thread(target=reader)
    reader_thread.start()
    lock.release_read()
    writer_thread.join(1)
    reader_thread.join(1)
    assert order == ["writer", "reader"]
