import json

import pytest
from click.testing import CliRunner

import recommender.main as recommender_main
from shared.models import JobPosting, RankedResult, RecommendationResponse


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(recommender_main, "setup_logging", lambda service: None)


def test_recommend_prints_results(monkeypatch):
    async def fake_recommend(user_id, mode):
        assert (user_id, mode) == ("user-1", "hybrid")
        return RecommendationResponse(
            results=[
                RankedResult(
                    id="j1",
                    title="Backend Engineer",
                    location="Berlin",
                    posting_url="https://jobs.example.com/j1",
                    score=91,
                    reason="Python and PostgreSQL",
                )
            ]
        )

    monkeypatch.setattr(recommender_main, "recommend", fake_recommend)

    result = CliRunner().invoke(recommender_main.main, ["recommend", "-u", "user-1", "-m", "hybrid"])

    assert result.exit_code == 0
    assert "1. [91] Backend Engineer (Berlin)" in result.output
    assert "https://jobs.example.com/j1" in result.output


def test_recommend_reports_reason_code(monkeypatch):
    async def fake_recommend(user_id, mode):
        return RecommendationResponse(success=False, reason_code="no_candidates", message="Nothing left")

    monkeypatch.setattr(recommender_main, "recommend", fake_recommend)

    result = CliRunner().invoke(recommender_main.main, ["recommend", "-u", "user-1"])

    assert result.exit_code == 1
    assert "no_candidates" in result.output


def test_recommend_json_output(monkeypatch):
    async def fake_recommend(user_id, mode):
        return RecommendationResponse(success=False, reason_code="profile_not_found")

    monkeypatch.setattr(recommender_main, "recommend", fake_recommend)

    result = CliRunner().invoke(recommender_main.main, ["recommend", "-u", "x", "--json"])

    assert result.exit_code == 0
    assert json.loads(result.output)["reason_code"] == "profile_not_found"


def test_recommend_rejects_unknown_mode():
    result = CliRunner().invoke(recommender_main.main, ["recommend", "-u", "x", "-m", "random"])

    assert result.exit_code != 0


def test_feedback_and_liked_commands(monkeypatch):
    saved = []

    async def fake_save(user_id, job_id, liked):
        saved.append((user_id, job_id, liked))

    async def fake_list(user_id):
        return [JobPosting(id="j3", title="Data Engineer", skill_embedding=[1.0])]

    monkeypatch.setattr(recommender_main, "save_feedback", fake_save)
    monkeypatch.setattr(recommender_main, "list_liked", fake_list)
    runner = CliRunner()

    runner.invoke(recommender_main.main, ["feedback", "-u", "user-1", "-j", "3", "--disliked"])
    liked = runner.invoke(recommender_main.main, ["liked", "-u", "user-1"])

    assert saved == [("user-1", "3", False)]
    listed = json.loads(liked.output)
    assert listed[0]["id"] == "j3"
    assert "skill_embedding" not in listed[0]


def test_feedback_requires_numeric_job_id(monkeypatch):
    saved = []

    async def fake_save(user_id, job_id, liked):
        saved.append(job_id)

    monkeypatch.setattr(recommender_main, "save_feedback", fake_save)

    result = CliRunner().invoke(recommender_main.main, ["feedback", "-u", "user-1", "-j", "abc", "--liked"])

    assert result.exit_code != 0
    assert saved == []
