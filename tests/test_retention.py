from app.src.retention import batched, thinSession


def test_keeps_first_last_and_every_fifth():
    ids = list(range(23))

    deleted = thinSession(ids, 5)
    kept = [i for i in ids if i not in deleted]

    assert kept == [0, 5, 10, 15, 20, 22]
    assert len(deleted) == 17


def test_short_sessions_are_untouched():
    assert thinSession(list(range(5)), 5) == []
    assert thinSession([], 5) == []
    assert thinSession([42], 5) == []


def test_six_points_lose_the_middle_ones():
    assert thinSession(list(range(6)), 5) == [1, 2, 3, 4]


def test_stride_one_keeps_everything():
    assert thinSession(list(range(10)), 1) == []


def test_works_on_real_ids_in_order():
    ids = [101, 107, 115, 120, 131, 140, 152]

    assert thinSession(ids, 3) == [107, 115, 131, 140]


def test_second_pure_pass_thins_again():
    # Job level re-runs are guarded by DutySession.points_thinned_on
    kept = [0, 5, 10, 15, 20, 22]

    assert thinSession(kept, 5) == [5, 10, 15, 20]


def test_batched_splits_in_order():
    batches = list(batched(list(range(250)), 100))

    assert [len(batch) for batch in batches] == [100, 100, 50]
    assert batches[2][0] == 200
    assert list(batched([], 100)) == []
