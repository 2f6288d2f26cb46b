import pytest

from amplicon_tk import Amplitype, ConsensusPolicy, Stack, build, build_all, build_from_counts, column_consensus


@pytest.fixture
def stack():
    stack = Stack("ampA")
    for seq in ("AAAAA", "AAAAA", "AAAAT"):
        stack.add(seq)
    return stack


def test_majority(stack):
    assert build(stack) == [Amplitype("ampA", "AAAAA", 2, 3)]


def test_frequency_policy_keeps_both_variants(stack):
    amplitypes = build(stack, min_frequency=0.2, policy=ConsensusPolicy.FREQUENCY)
    assert [(a.sequence, a.support) for a in amplitypes] == [("AAAAA", 2), ("AAAAT", 1)]
    assert all(a.total == 3 for a in amplitypes)


def test_frequency_policy_threshold(stack):
    amplitypes = build(stack, min_frequency=0.5, policy='frequency')
    assert [a.sequence for a in amplitypes] == ["AAAAA"]
    assert amplitypes[0].frequency == pytest.approx(2 / 3)


def test_majority_tie_is_deterministic():
    counts = {"TTTT": 3, "GGGG": 3, "AAAA": 1}
    results = {build_from_counts("ampA", dict(reversed(list(counts.items()))))[0].sequence for _ in range(5)}
    assert results == {"GGGG"}
    assert build_from_counts("ampA", counts)[0].sequence == "GGGG"


def test_empty_stack_yields_nothing(caplog):
    assert build(Stack("ampZ")) == []
    assert "ampZ" in caplog.text


def test_invalid_min_frequency(stack):
    with pytest.raises(ValueError):
        build(stack, min_frequency=1.5, policy=ConsensusPolicy.FREQUENCY)


def test_column_consensus():
    assert column_consensus({"AAAAA": 2, "AAAAT": 1, "AAA": 1}) == "AAAAA"
    # A majority of shorter reads drops the tail
    assert column_consensus({"ACGTAC": 1, "ACGT": 3}) == "ACGT"
    assert column_consensus({}) == ""


def test_column_policy_support(stack):
    amplitypes = build(stack, policy=ConsensusPolicy.COLUMN)
    assert amplitypes == [Amplitype("ampA", "AAAAA", 2, 3)]


def test_build_all_preserves_order(stack):
    other = Stack("ampB")
    other.add("CCCC")
    empty = Stack("ampC")

    results = build_all([other, stack, empty])
    assert list(results) == ["ampB", "ampA", "ampC"]
    assert results["ampB"][0].sequence == "CCCC"
    assert results["ampC"] == []


def test_build_all_parallel_matches_sequential(stack):
    other = Stack("ampB")
    for seq in ("CCCC", "CCCG", "CCCC"):
        other.add(seq)

    sequential = build_all([stack, other], min_frequency=0.2, policy=ConsensusPolicy.FREQUENCY)
    parallel = build_all([stack, other], min_frequency=0.2, policy=ConsensusPolicy.FREQUENCY, num_cores=2)
    assert parallel == sequential
