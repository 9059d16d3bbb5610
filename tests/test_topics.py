from jobhub.events.topics import matches_any, topic_matches


def test_exact_key_matches_itself_only() -> None:
    assert topic_matches("job.published", "job.published")
    assert not topic_matches("job.published", "job.deleted")


def test_star_matches_exactly_one_word() -> None:
    assert topic_matches("job.*", "job.hot")
    assert topic_matches("*.created", "company.created")
    assert not topic_matches("job.*", "job")
    assert not topic_matches("company.*", "company.subscription.updated")


def test_hash_matches_zero_or_more_words() -> None:
    assert topic_matches("company.#", "company")
    assert topic_matches("company.#", "company.subscription.updated")
    assert topic_matches("#", "identify.user.invited")
    assert topic_matches("#.updated", "application.status.updated")
    assert not topic_matches("company.#", "companies.member.invited")


def test_matches_any() -> None:
    patterns = ("company.created", "company.subscription.updated")
    assert matches_any(patterns, "company.subscription.updated")
    assert not matches_any(patterns, "company.verified")
    assert not matches_any((), "company.created")
