"""Tests for the controller event queue."""

import threading

from abot.events import DeltaArrived, EventQueue, Tick


class TestEventQueue:

    def test_drain_preserves_order(self):
        events = EventQueue()
        for i in range(5):
            events.put(DeltaArrived(1, str(i)))
        assert [e.text for e in events.drain()] == ["0", "1", "2", "3", "4"]
        assert events.drain() == []
        assert events.empty()

    def test_wakeup_is_coalesced(self):
        wakeups = []
        events = EventQueue(wakeup=lambda: wakeups.append(1))
        events.put(Tick())
        events.put(Tick())
        assert len(wakeups) == 1

        events.drain()
        events.put(Tick())
        assert len(wakeups) == 2

    def test_wait_times_out_empty(self):
        assert EventQueue().wait(timeout=0.01) == []

    def test_wait_takes_everything_pending(self):
        events = EventQueue()
        events.put(Tick())
        events.put(Tick())
        assert len(events.wait(timeout=0.01)) == 2

    def test_concurrent_producers(self):
        events = EventQueue()

        def produce(stream_id):
            for i in range(200):
                events.put(DeltaArrived(stream_id, str(i)))

        threads = [threading.Thread(target=produce, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        received = events.drain()
        assert len(received) == 800
        for n in range(4):
            texts = [e.text for e in received if e.stream_id == n]
            assert texts == [str(i) for i in range(200)]
