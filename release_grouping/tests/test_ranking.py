from release_grouping.services.ranking import (
    RelevanceRanker,
    RelevanceWeights,
    field_length_score,
    keyword_frequency,
    tokenize,
)
from release_grouping.storefront.models import Record


def _rec(id, title="", artist=None, vendor="", tags=None, product_type=""):
    return Record(id=id, title=title, artist=artist, vendor=vendor, tags=tags or [], product_type=product_type)


def test_tokenize():
    assert tokenize("  Dark  Side of ") == ["dark", "side", "of"]
    assert tokenize("") == []


def test_keyword_frequency_counts_every_token():
    assert keyword_frequency("the wall the wall", ["wall"]) == 2
    assert keyword_frequency("the wall", ["the", "wall"]) == 2
    assert keyword_frequency("", ["wall"]) == 0


def test_field_length_score_favours_short_fields():
    assert field_length_score("abc", 200) > field_length_score("a much longer product title", 200)
    assert field_length_score("x" * 400, 200) == 0.0
    assert field_length_score("", 200) == 0.0


def test_exact_title_beats_tag_only_match():
    ranker = RelevanceRanker()
    in_title = _rec("1", title="blue train")
    in_tags = _rec("2", title="something else", tags=["blue train"])

    ranked = ranker.rank([in_tags, in_title], "blue train")
    assert [r.id for r in ranked] == ["1", "2"]
    assert ranker.score(in_title, "blue train") > ranker.score(in_tags, "blue train")


def test_artist_bonus_and_compilation_penalty():
    ranker = RelevanceRanker()
    floyd = _rec("1", title="The Wall", artist="Pink Floyd")
    various = _rec("2", title="Great Wall Documentary", artist="Various")

    ranked = ranker.rank([various, floyd], "wall")
    assert [r.id for r in ranked] == ["1", "2"]


def test_various_prefix_is_penalized():
    ranker = RelevanceRanker()
    plain = _rec("1", title="Disco Hits", artist="DJ Someone")
    various = _rec("2", title="Disco Hits", artist="Various Artists")
    assert ranker.score(plain, "disco") > ranker.score(various, "disco")


def test_artist_match_outranks_title_only_mention():
    ranker = RelevanceRanker()
    by_artist = _rec("1", title="Miles Davis - Kind of Blue", artist="Miles Davis")
    about_artist = _rec("2", title="The Miles Davis Story", artist="John Szwed")

    ranked = ranker.rank([about_artist, by_artist], "miles davis")
    assert ranked[0].id == "1"


def test_ties_break_on_title_then_input_order():
    ranker = RelevanceRanker()
    records = [_rec("1", title="B"), _rec("2", title="a"), _rec("3", title="b")]

    ranked = ranker.rank(records, "zzz")
    assert [r.id for r in ranked] == ["2", "1", "3"]


def test_empty_terms_keep_input_order():
    ranker = RelevanceRanker()
    records = [_rec("2", title="b"), _rec("1", title="a")]
    assert ranker.rank(records, "") == records
    assert ranker.rank(records, "   ") == records


def test_weights_are_replaceable():
    weights = RelevanceWeights(compilation_penalty=0, missing_artist_penalty=0)
    ranker = RelevanceRanker(weights)
    assert ranker.score(_rec("1", title="x", artist="Various"), "zzz") == 0
    assert ranker.score(_rec("2", title="x"), "zzz") == 0
