"""Tests for push webhook payload parsing."""

import pytest

from reposync.engines.sync.models import CommitActor
from reposync.events import parse_commits, parse_push_event
from reposync.exceptions import EventPayloadError


def _payload(**overrides):
    payload = {
        "ref": "refs/heads/main",
        "repository": {"full_name": "A/a", "name": "a", "owner": {"login": "A"}},
        "commits": [
            {
                "id": "c1",
                "message": "Add model",
                "timestamp": "2024-05-01T12:00:00Z",
                "tree_id": "t1",
                "distinct": True,
                "url": "https://github.com/A/a/commit/c1",
                "author": {"name": "Ann", "email": "ann@example.com", "username": "ann"},
                "committer": {"name": "GitHub", "email": "noreply@github.com"},
            },
            {"id": "c2", "message": "Merge", "distinct": False},
        ],
    }
    payload.update(overrides)
    return payload


class TestParsePushEvent:
    def test_parses_source_and_commits(self):
        event = parse_push_event(_payload())
        assert event.source_repository == "A/a"
        assert event.branch == "main"
        assert [c.id for c in event.commits] == ["c1", "c2"]
        first = event.commits[0]
        assert first.distinct is True
        assert first.tree_id == "t1"
        assert first.author == CommitActor(name="Ann", email="ann@example.com", username="ann")
        assert first.committer.username is None
        assert event.commits[1].distinct is False

    def test_full_name_from_owner_and_name(self):
        event = parse_push_event(_payload(repository={"name": "a", "owner": {"name": "A"}}))
        assert event.source_repository == "A/a"

    def test_tag_push_has_no_branch(self):
        assert parse_push_event(_payload(ref="refs/tags/v1")).branch is None

    def test_no_commits(self):
        assert parse_push_event(_payload(commits=None)).commits == ()

    @pytest.mark.parametrize("payload", [[], ["A/a"], "A/a", None])
    def test_payload_must_be_an_object(self, payload):
        with pytest.raises(EventPayloadError, match="JSON object"):
            parse_push_event(payload)

    def test_missing_repository(self):
        with pytest.raises(EventPayloadError):
            parse_push_event({"commits": []})

    def test_repository_without_name(self):
        with pytest.raises(EventPayloadError):
            parse_push_event(_payload(repository={"id": 1}))

    def test_commits_not_a_list(self):
        with pytest.raises(EventPayloadError):
            parse_push_event(_payload(commits={"id": "c1"}))


class TestParseCommits:
    def test_distinct_must_be_literal_true(self):
        commits = parse_commits([{"id": "c1", "distinct": "yes"}, {"id": "c2"}])
        assert [c.distinct for c in commits] == [False, False]

    def test_missing_id(self):
        with pytest.raises(EventPayloadError, match="#1"):
            parse_commits([{"id": "c1"}, {"message": "no id"}])
