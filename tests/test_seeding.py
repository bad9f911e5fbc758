from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from dchdigi.physics.seeding import UniqueIDGenerator, current_streams, prepare_random_engine


def _draws(gen, run, event, n=5):
    s = prepare_random_engine(gen, run, event)
    return s.smear.random(n), s.clusters.random(n)


def test_same_event_same_streams():
    gen = UniqueIDGenerator()
    a = _draws(gen, 1, 42)
    b = _draws(gen, 1, 42)
    np.testing.assert_array_equal(a[0], b[0])
    np.testing.assert_array_equal(a[1], b[1])


def test_different_events_and_services_differ():
    gen = UniqueIDGenerator()
    a = _draws(gen, 1, 42)
    assert not np.array_equal(a[0], _draws(gen, 1, 43)[0])
    assert not np.array_equal(a[0], _draws(gen, 2, 42)[0])
    assert not np.array_equal(a[0], _draws(UniqueIDGenerator("other"), 1, 42)[0])
    assert not np.array_equal(a[0], _draws(UniqueIDGenerator(salt=1), 1, 42)[0])
    # the two streams of one event are independent
    assert not np.array_equal(a[0], a[1])


def test_unique_id_stable():
    gen = UniqueIDGenerator()
    assert gen.unique_id(3, 7) == UniqueIDGenerator().unique_id(3, 7)
    assert gen.unique_id(3, 7) != gen.unique_id(3, 8)
    with pytest.raises(ValueError):
        gen.entropy(-1, 0)


def test_streams_are_thread_local():
    gen = UniqueIDGenerator()
    expected = {ev: _draws(gen, 1, ev)[0] for ev in range(16)}

    def work(ev):
        prepare_random_engine(gen, 1, ev)
        return ev, current_streams().smear.random(5)

    with ThreadPoolExecutor(max_workers=4) as ex:
        for ev, got in ex.map(work, range(16)):
            np.testing.assert_array_equal(got, expected[ev])


def test_current_streams_requires_prepare():
    with ThreadPoolExecutor(max_workers=1) as ex:
        with pytest.raises(RuntimeError):
            ex.submit(current_streams).result()
