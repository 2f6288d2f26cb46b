import pytest
from conftest import AMP_A_FORWARD, AMP_A_REVERSE, AMP_B_FORWARD, INSERT_A, make_read

from amplicon_tk import MalformedReadError, Matched, NoMatch, Orientation, PrimerCatalog, PrimerMatcher, PrimerPair, Read, match
from amplicon_tk.matcher import PrimerHit, find_primer


def mutate(seq: str, pos: int) -> str:
    base = 'A' if seq[pos] != 'A' else 'C'
    return seq[:pos] + base + seq[pos + 1:]


class TestFindPrimer:
    def test_exact(self):
        assert find_primer("AAACGTAA", "ACGT", 0) == PrimerHit(2, 6, 0)

    def test_absent(self):
        assert find_primer("AAAAAAAA", "ACGT", 0) is None

    def test_prefers_fewest_mismatches(self):
        assert find_primer("AAACTTAAACGTA", "ACGT", 1) == PrimerHit(8, 12, 0)

    def test_leftmost_on_tie(self):
        assert find_primer("ACTTACTT", "ACGT", 1) == PrimerHit(0, 4, 1)

    def test_respects_window(self):
        assert find_primer("ACGTAAAA", "ACGT", 0, start=1) is None
        assert find_primer("AAAAACGT", "ACGT", 0, end=7) is None

    def test_window_shorter_than_primer(self):
        assert find_primer("ACG", "ACGT", 2) is None

    def test_degenerate_codes_match_without_mismatches(self):
        assert find_primer("TTAGCGTT", "ARCG", 0) == PrimerHit(2, 6, 0)
        assert find_primer("TTAACGTT", "ARCG", 0) == PrimerHit(2, 6, 0)
        assert find_primer("TTACCGTT", "ARCG", 0) is None
        assert find_primer("TTACCGTT", "ARCG", 1) == PrimerHit(2, 6, 1)

    def test_n_matches_any_base(self):
        assert find_primer("GGTAGG", "NNTA", 0) == PrimerHit(0, 4, 0)


def test_exact_forward_match(catalog, read_a):
    result = match(read_a, catalog)
    assert isinstance(result, Matched)
    assert result.amplicon == "ampA"
    assert result.orientation is Orientation.FORWARD
    assert result.forward_span == (2, 22)
    assert result.reverse_span == (38, 58)
    assert result.mismatches == 0


def test_toy_scenario(toy_catalog):
    result = match(Read("r1", "ACGTAAAAATGCA", "I" * 13), toy_catalog)
    assert result.amplicon == "ampA"
    assert result.insert == (4, 9)


def test_no_primer(toy_catalog):
    result = match(Read("r2", "GGGGGGGGGG", "I" * 10), toy_catalog)
    assert isinstance(result, NoMatch)
    assert not result.matched
    assert not result.ambiguous


def test_reverse_strand_match(catalog, read_a):
    result = match(read_a.reverse_complemented(), catalog)
    assert result.amplicon == "ampA"
    assert result.orientation is Orientation.REVERSE
    # Spans refer to the reverse complement of the input, which is read_a itself
    assert result.forward_span == (2, 22)
    assert result.reverse_span == (38, 58)


def test_only_one_primer_is_not_a_match(catalog):
    read = make_read(AMP_A_FORWARD, INSERT_A, "T" * 20)
    assert not match(read, catalog).matched


def test_primers_from_different_pairs_do_not_match(catalog):
    read = make_read(AMP_B_FORWARD, INSERT_A, AMP_A_REVERSE)
    assert not match(read, catalog).matched


def test_mismatch_tolerance_is_per_primer(catalog):
    read = make_read(mutate(AMP_A_FORWARD, 5), INSERT_A, mutate(AMP_A_REVERSE, 10))

    assert not match(read, catalog, max_mismatches=0).matched

    result = match(read, catalog, max_mismatches=1)
    assert result.amplicon == "ampA"
    assert result.mismatches == 2


def test_pair_tolerance_overrides_default():
    catalog = PrimerCatalog([PrimerPair("ampA", AMP_A_FORWARD, AMP_A_REVERSE, max_mismatches=1)])
    read = make_read(mutate(AMP_A_FORWARD, 3), INSERT_A, AMP_A_REVERSE)
    assert match(read, catalog, max_mismatches=0).amplicon == "ampA"


def test_two_mismatches_rejected_at_one(catalog):
    primer = mutate(mutate(AMP_A_FORWARD, 3), 12)
    read = make_read(primer, INSERT_A, AMP_A_REVERSE)
    assert not match(read, catalog, max_mismatches=1).matched


def test_search_window(catalog):
    read = make_read(AMP_A_FORWARD, INSERT_A, AMP_A_REVERSE, prefix="A" * 100)
    assert not match(read, catalog, search_window=50).matched
    assert match(read, catalog, search_window=None).amplicon == "ampA"


def test_ambiguous_match():
    catalog = PrimerCatalog(
        [
            PrimerPair("ampA", AMP_A_FORWARD, AMP_A_REVERSE),
            PrimerPair("ampA_copy", AMP_A_FORWARD, AMP_A_REVERSE),
        ]
    )
    read = make_read(AMP_A_FORWARD, INSERT_A, AMP_A_REVERSE)

    result = match(read, catalog)
    assert isinstance(result, NoMatch)
    assert result.ambiguous

    assert match(read, catalog, keep_multi=True).amplicon == "ampA"


def test_better_match_wins_over_ambiguity(catalog):
    # ampC's forward primer differs from ampA's by one base
    other = PrimerCatalog(
        list(catalog.values())
        + [PrimerPair("ampC", mutate(AMP_A_FORWARD, 7), AMP_A_REVERSE, max_mismatches=1)]
    )
    read = make_read(AMP_A_FORWARD, INSERT_A, AMP_A_REVERSE)
    assert match(read, other).amplicon == "ampA"


@pytest.mark.parametrize(
    "read",
    [
        Read("empty", "", ""),
        Read("short_quality", "ACGTAAAAATGCA", "III"),
    ],
)
def test_malformed_read_raises(toy_catalog, read):
    with pytest.raises(MalformedReadError):
        match(read, toy_catalog)


def test_matched_read_contains_both_primers(catalog, read_a, read_b):
    matcher = PrimerMatcher(max_mismatches=1)
    for read in (read_a, read_b, read_a.reverse_complemented()):
        result = matcher.match(read, catalog)
        pair = catalog[result.amplicon]
        seq = read.sequence if result.orientation is Orientation.FORWARD else read.reverse_complemented().sequence
        fwd = seq[result.forward_span[0]:result.forward_span[1]]
        rev = seq[result.reverse_span[0]:result.reverse_span[1]]
        assert sum(a != b for a, b in zip(fwd, pair.forward)) <= 1
        assert sum(a != b for a, b in zip(rev, pair.reverse)) <= 1
        assert result.forward_span[1] <= result.reverse_span[0]


def test_invalid_matcher_settings():
    with pytest.raises(ValueError):
        PrimerMatcher(max_mismatches=-1)
    with pytest.raises(ValueError):
        PrimerMatcher(search_window=-5)


def test_degenerate_primer_pair(catalog):
    # Y stands for C or T
    forward = AMP_A_FORWARD[:4] + "Y" + AMP_A_FORWARD[5:]
    degenerate = PrimerCatalog([PrimerPair("ampA", forward, AMP_A_REVERSE)])

    result = match(make_read(AMP_A_FORWARD, INSERT_A, AMP_A_REVERSE), degenerate)
    assert result.amplicon == "ampA"
    assert result.mismatches == 0

    read = make_read(AMP_A_FORWARD, INSERT_A, AMP_A_REVERSE).reverse_complemented()
    assert match(read, degenerate).orientation is Orientation.REVERSE
