from conftest import AMP_A_FORWARD, AMP_A_REVERSE, INSERT_A, make_read

from amplicon_tk import AmpliconClassifier, PrimerCatalog, PrimerMatcher, PrimerPair, Read, RejectReason, classify


def test_accepts_read_with_both_primers(toy_catalog):
    result = classify(Read("r1", "ACGTAAAAATGCA", "I" * 13), toy_catalog)
    assert result.accepted
    assert result.amplicon == "ampA"
    assert result.span.insert == (4, 9)


def test_rejects_read_without_primers(toy_catalog):
    result = classify(Read("r2", "GGGGGGGGGG", "I" * 10), toy_catalog)
    assert not result.accepted
    assert result.reason is RejectReason.NO_PRIMER_MATCH


def test_malformed_read_is_rejected_not_raised(toy_catalog):
    result = classify(Read("r3", "ACGTAAAAATGCA", "I"), toy_catalog)
    assert result.reason is RejectReason.MALFORMED
    assert "r3" in result.detail


def test_ambiguous_read_is_rejected():
    catalog = PrimerCatalog(
        [
            PrimerPair("ampA", AMP_A_FORWARD, AMP_A_REVERSE),
            PrimerPair("ampA_copy", AMP_A_FORWARD, AMP_A_REVERSE),
        ]
    )
    read = make_read(AMP_A_FORWARD, INSERT_A, AMP_A_REVERSE)

    result = AmpliconClassifier(catalog).classify(read)
    assert result.reason is RejectReason.NO_PRIMER_MATCH
    assert result.detail == "ambiguous primer pairs"

    kept = AmpliconClassifier(catalog, PrimerMatcher(keep_multi=True)).classify(read)
    assert kept.amplicon == "ampA"


def test_classifier_does_not_modify_catalog(catalog, read_a, read_b):
    before = catalog.scheme_hash()
    classifier = AmpliconClassifier(catalog)
    assert [classifier.classify(r).amplicon for r in (read_a, read_b)] == ["ampA", "ampB"]
    assert catalog.scheme_hash() == before
