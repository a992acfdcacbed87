from flipvalidation.store.models import AnswerType, Flip, RelevanceType, SessionContext, SessionSnapshot


def test_flip_coerces_marks_to_enums():
    flip = Flip(hash=123, option=2, relevance=None)
    assert flip.hash == "123"
    assert flip.option is AnswerType.RIGHT
    assert flip.relevance is RelevanceType.ABSTAINED


def test_flip_from_dict_ignores_undeclared_keys():
    flip = Flip.from_dict({"hash": "a", "decoded": True, "image": "data:..."})
    assert flip.decoded is True
    assert "image" not in flip.to_dict()


def test_context_post_init_rehydrates_and_clamps():
    ctx = SessionContext(shortFlips=[{"hash": "a", "option": 1}], currentIndex=-4)
    assert isinstance(ctx.shortFlips[0], Flip)
    assert ctx.currentIndex == 0


def test_snapshot_to_dict_is_plain_data():
    ctx = SessionContext(epoch=9, longFlips=[Flip(hash="l", relevance=RelevanceType.IRRELEVANT)])
    data = SessionSnapshot("longSession.solve.answer.flips", ctx).to_dict()
    assert data["statePath"] == "longSession.solve.answer.flips"
    assert data["context"]["longFlips"][0]["relevance"] == 2
    assert SessionContext(**data["context"]) == ctx
