import threading

import pytest

from amplicon_tk import Stack, StackManager, TrimmedRead
from amplicon_tk.stacks import InMemoryCounts, SpillingCounts


def trimmed(sequence: str, amplicon: str = "ampA", identifier: str = "r") -> TrimmedRead:
    return TrimmedRead(identifier, sequence, "I" * len(sequence), amplicon=amplicon)


def test_stack_counts():
    stack = Stack("ampA")
    for seq in ("AAAAA", "AAAAA", "AAAAT"):
        stack.add(seq)

    assert stack.counts == {"AAAAA": 2, "AAAAT": 1}
    assert stack.total == 3
    assert stack.n_unique == 2
    assert stack.total == sum(stack.counts.values())


def test_most_common_breaks_ties_lexicographically():
    stack = Stack("ampA")
    for seq in ("TTT", "GGG", "GGG", "AAA", "TTT"):
        stack.add(seq)
    assert stack.most_common() == [("GGG", 2), ("TTT", 2), ("AAA", 1)]


def test_stack_to_frame():
    stack = Stack("ampA")
    for seq in ("AAAAA", "AAAAA", "AAAAT", "AAAAA"):
        stack.add(seq)

    df = stack.to_frame()
    assert list(df.columns) == ['sequence', 'count', 'frequency']
    assert df['sequence'].tolist() == ["AAAAA", "AAAAT"]
    assert df['frequency'].tolist() == pytest.approx([0.75, 0.25])


def test_spilling_counts_merge(tmp_path):
    store = SpillingCounts(tmp_path / "spill.csv", threshold=2)
    for seq in ("A", "C", "G", "A", "T", "NA", "A", "C"):
        store.increment(seq)

    assert store.n_spills >= 1
    assert store.counts() == {"A": 3, "C": 2, "G": 1, "T": 1, "NA": 1}
    assert store.total == 8

    store.close()
    assert not (tmp_path / "spill.csv").exists()


def test_spilling_matches_in_memory(tmp_path):
    sequences = [f"ACGT{i % 7}" for i in range(100)]
    memory, spilling = InMemoryCounts(), SpillingCounts(tmp_path / "s.csv", threshold=3)
    for seq in sequences:
        memory.increment(seq)
        spilling.increment(seq)
    assert spilling.counts() == memory.counts()
    assert spilling.total == memory.total == 100


def test_manager_assigns_by_amplicon():
    with StackManager() as manager:
        manager.assign(trimmed("AAAAA", "ampA"))
        manager.assign(trimmed("AAAAA", "ampA"))
        manager.assign(trimmed("CCC", "ampB"))

        assert len(manager) == 2
        assert "ampA" in manager and "ampC" not in manager
        assert manager.sizes() == {"ampA": 2, "ampB": 1}
        assert manager.total_reads == 3
        assert [stack.amplicon for stack in manager] == ["ampA", "ampB"]


def test_manager_tracks_read_ids():
    with StackManager(track_read_ids=True) as manager:
        manager.assign(trimmed("AAAAA", identifier="r1"))
        manager.assign(trimmed("AAAAT", identifier="r2"))
        assert manager["ampA"].read_ids == {"r1", "r2"}


def test_manager_spill_directory_removed_on_close(tmp_path):
    manager = StackManager(spill_threshold=1, spill_dir=tmp_path)
    for seq in ("AAA", "CCC", "GGG", "AAA"):
        manager.assign(trimmed(seq))

    assert manager["ampA"].counts == {"AAA": 2, "CCC": 1, "GGG": 1}
    assert any(tmp_path.iterdir())

    manager.close()
    assert not any(tmp_path.iterdir())


def test_concurrent_assignment_loses_no_reads():
    manager = StackManager()
    reads = [trimmed(seq, amplicon) for amplicon in ("ampA", "ampB") for seq in ("AAA", "CCC")] * 250

    def worker(chunk):
        for read in chunk:
            manager.assign(read)

    threads = [threading.Thread(target=worker, args=(reads[i::4],)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert manager.total_reads == len(reads)
    assert manager["ampA"].counts == {"AAA": 250, "CCC": 250}
    manager.close()
