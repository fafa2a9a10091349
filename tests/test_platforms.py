import time

import pytest
import requests

from fakes import FakeResponse, FakeSession, ScriptedFetcher
from platforms import FETCHERS, build_fetchers
from platforms.base import Confidence, Platform, ProfileStats, Strategy
from platforms.codechef import CodeChefFetcher, parse_profile_page
from platforms.codeforces import CodeforcesFetcher, count_solved
from platforms.errors import InvalidUsername, NotFound, RateLimited, Timeout, UpstreamUnavailable
from platforms.geeksforgeeks import GeeksforGeeksFetcher
from platforms.github import GitHubFetcher
from platforms.hackerrank import HackerRankFetcher
from platforms.http import Deadline, request
from platforms.leetcode import LeetCodeFetcher


# ---------------------------------------------------------------------------
# HTTP plumbing
# ---------------------------------------------------------------------------


class RaisingSession:
    headers = {}

    def __init__(self, exc):
        self.exc = exc

    def request(self, method, url, **kwargs):
        raise self.exc


def test_transport_errors_are_classified():
    deadline = Deadline(10)
    with pytest.raises(Timeout):
        request(RaisingSession(requests.ConnectTimeout("slow")), "GET", "https://x", platform="x", deadline=deadline)
    with pytest.raises(UpstreamUnavailable):
        request(RaisingSession(requests.ConnectionError("refused")), "GET", "https://x", platform="x", deadline=deadline)


def test_http_429_honours_retry_after():
    session = FakeSession({("GET", "x.test"): FakeResponse(429, text="slow down", headers={"Retry-After": "7"})})
    with pytest.raises(RateLimited) as info:
        request(session, "GET", "https://x.test/a", platform="x", deadline=Deadline(10))
    assert info.value.retry_after == 7.0


def test_http_5xx_is_upstream_unavailable_and_404_is_returned():
    session = FakeSession({("GET", "/down"): FakeResponse(502), ("GET", "/missing"): FakeResponse(404)})
    with pytest.raises(UpstreamUnavailable):
        request(session, "GET", "https://x.test/down", platform="x", deadline=Deadline(10))
    assert request(session, "GET", "https://x.test/missing", platform="x", deadline=Deadline(10)).status_code == 404


def test_exhausted_deadline_raises_timeout():
    with pytest.raises(Timeout):
        Deadline(0).budget()
    assert Deadline(None).budget(3.0) == 3.0


# ---------------------------------------------------------------------------
# Strategy chain
# ---------------------------------------------------------------------------


def test_invalid_username_rejected_before_any_request():
    session = FakeSession()
    with pytest.raises(InvalidUsername):
        CodeforcesFetcher(session=session).fetch("no spaces allowed")
    with pytest.raises(InvalidUsername):
        CodeforcesFetcher(session=session).fetch("   ")
    assert session.calls == []


def test_markup_drift_falls_through_to_next_strategy():
    class DriftingFetcher(ScriptedFetcher):
        def strategies(self):
            return [Strategy("broken", lambda username, deadline: {}["missing"]), Strategy("scripted", self._play)]

    profile = DriftingFetcher(default=ProfileStats(problems_solved=3)).fetch("someone")
    assert profile.strategy == "scripted"
    assert profile.score == 30.0


def test_not_found_stops_the_chain():
    fetcher = ScriptedFetcher(script=[NotFound("gone")])
    with pytest.raises(NotFound) as info:
        fetcher.fetch("ghost")
    assert info.value.platform == "codeforces"
    assert info.value.username == "ghost"


def test_deadline_exhaustion_surfaces_timeout():
    with pytest.raises(Timeout):
        CodeforcesFetcher(session=FakeSession()).fetch("tourist", timeout=0)


def test_registry_covers_every_platform():
    assert set(FETCHERS) == set(Platform)
    fetchers = build_fetchers(browser_fallback=True, github_token="t0ken")
    assert fetchers[Platform.CODECHEF].browser_fallback is True
    assert fetchers[Platform.GITHUB].token == "t0ken"


# ---------------------------------------------------------------------------
# Codeforces
# ---------------------------------------------------------------------------


def _codeforces_session():
    session = FakeSession()
    session.route("GET", "user.info", FakeResponse(200, {
        "status": "OK",
        "result": [{"handle": "tourist", "rating": 1500, "maxRating": 1600, "rank": "specialist"}],
    }))
    session.route("GET", "user.rating", FakeResponse(200, {"status": "OK", "result": [{}, {}, {}]}))
    session.route("GET", "user.status", FakeResponse(200, {"status": "OK", "result": [
        {"verdict": "OK", "problem": {"contestId": 1, "index": "A", "name": "x"}},
        {"verdict": "OK", "problem": {"contestId": 1, "index": "A", "name": "x"}},
        {"verdict": "OK", "problem": {"contestId": 2, "index": "C1", "name": "y"}},
        {"verdict": "OK", "problem": {"contestId": 3, "index": "F", "name": "z"}},
        {"verdict": "WRONG_ANSWER", "problem": {"contestId": 4, "index": "B", "name": "w"}},
    ]}))
    return session


def test_codeforces_api_profile():
    profile = CodeforcesFetcher(session=_codeforces_session()).fetch("tourist")
    assert profile.strategy == "api"
    assert profile.confidence is Confidence.FULL
    assert profile.problems_solved == 3
    assert profile.difficulty == {"easy": 1, "medium": 1, "hard": 1}
    assert profile.contests == 3
    assert profile.rank == "specialist"
    # 10 * 3 + 0.001 * 300^2 + 30 * 3
    assert profile.score == 210.0


def test_codeforces_unknown_handle_is_not_found():
    session = FakeSession({("GET", "user.info"): FakeResponse(400, {
        "status": "FAILED", "comment": "handles: User with handle ghost_user not found",
    })})
    with pytest.raises(NotFound) as info:
        CodeforcesFetcher(session=session).fetch("ghost_user")
    assert "ghost_user not found" in str(info.value)
    assert len(session.calls) == 1


def test_codeforces_secondary_failure_is_partial():
    session = _codeforces_session()
    session.route("GET", "user.status", FakeResponse(503))
    profile = CodeforcesFetcher(session=session).fetch("tourist")
    assert profile.partial
    assert profile.contests == 3
    assert profile.problems_solved is None
    assert profile.difficulty == {}


def test_codeforces_call_limit_is_rate_limited():
    session = FakeSession({("GET", "user.info"): FakeResponse(400, {"status": "FAILED", "comment": "Call limit exceeded"})})
    with pytest.raises(RateLimited):
        CodeforcesFetcher(session=session).fetch("tourist")


def test_codeforces_profile_page_fallback():
    html = """
    <div class="info"><div class="user-rank"><span>Expert</span></div>
    <ul><li>Contest rating: <span>1650</span> (max. expert, 1700)</li></ul></div>
    <div class="_UserActivityFrame_counterValue">412 problems</div>
    """
    session = FakeSession({("GET", "/profile/"): FakeResponse(200, text=html)})
    profile = CodeforcesFetcher(session=session).fetch("tourist")
    assert profile.strategy == "profile_page"
    assert profile.partial
    assert (profile.rating, profile.max_rating, profile.rank) == (1650, 1700, "expert")
    assert profile.problems_solved == 412


def test_codeforces_profile_redirect_is_not_found():
    session = FakeSession({("GET", "/profile/"): FakeResponse(200, text="<html></html>", url="https://codeforces.com/")})
    with pytest.raises(NotFound):
        CodeforcesFetcher(session=session).fetch("ghost_user")


def test_count_solved_ignores_duplicates_and_failed_verdicts():
    stats = count_solved([
        {"verdict": "OK", "problem": {"contestId": 5, "index": "B"}},
        {"verdict": "OK", "problem": {"contestId": 5, "index": "B"}},
        {"verdict": "TIME_LIMIT_EXCEEDED", "problem": {"contestId": 6, "index": "D"}},
    ])
    assert stats.problems_solved == 1
    assert stats.extras["accepted_submissions"] == 2


# ---------------------------------------------------------------------------
# LeetCode
# ---------------------------------------------------------------------------


def test_leetcode_graphql_profile():
    session = FakeSession({("POST", "graphql"): FakeResponse(200, {"data": {
        "matchedUser": {
            "username": "alice",
            "profile": {"ranking": 1000, "reputation": 5},
            "submitStatsGlobal": {"acSubmissionNum": [
                {"difficulty": "All", "count": 300},
                {"difficulty": "Easy", "count": 150},
                {"difficulty": "Medium", "count": 120},
                {"difficulty": "Hard", "count": 30},
            ]},
        },
        "userContestRanking": {"attendedContestsCount": 10, "rating": 1600.4, "globalRanking": 5000, "badge": {"name": "Knight"}},
    }})})
    profile = LeetCodeFetcher(session=session).fetch("alice")
    assert profile.confidence is Confidence.FULL
    assert profile.problems_solved == 300
    assert profile.difficulty == {"easy": 150, "medium": 120, "hard": 30}
    assert profile.rank == "Knight"
    assert profile.contests == 10
    assert profile.score == 3270.16


def test_leetcode_missing_user_is_not_found():
    session = FakeSession({("POST", "graphql"): FakeResponse(200, {
        "data": {"matchedUser": None, "userContestRanking": None},
        "errors": [{"message": "That user does not exist."}],
    })})
    with pytest.raises(NotFound):
        LeetCodeFetcher(session=session).fetch("nobody_here")


def test_leetcode_challenge_page_falls_back_to_stats_api():
    session = FakeSession({
        ("POST", "graphql"): FakeResponse(403, text="<html>Just a moment...</html>"),
        ("GET", "herokuapp"): FakeResponse(200, {
            "status": "success", "totalSolved": 42, "easySolved": 30, "mediumSolved": 10, "hardSolved": 2,
        }),
    })
    profile = LeetCodeFetcher(session=session).fetch("alice")
    assert profile.strategy == "stats_api"
    assert profile.partial
    assert profile.score == 420.0
    assert profile.contests is None


def test_leetcode_nothing_confirmed_is_never_a_zero_profile():
    session = FakeSession({
        ("POST", "graphql"): FakeResponse(403, text="blocked"),
        ("GET", "herokuapp"): FakeResponse(200, {"status": "error", "message": "service busy"}),
        ("GET", "leetcode.com/u/"): FakeResponse(403, text="blocked"),
    })
    with pytest.raises(UpstreamUnavailable):
        LeetCodeFetcher(session=session).fetch("alice")


# ---------------------------------------------------------------------------
# CodeChef
# ---------------------------------------------------------------------------

CODECHEF_PAGE = """
<div class="user-details-container"><header><h1 class="h2-style">Alice</h1></header>
<span class="m-username--link">alice_cc</span></div>
<div class="rating-header"><div class="rating-number">1876</div><small>(Highest Rating 1902)</small></div>
<div class="rating-star"><span>&#9733;</span><span>&#9733;</span><span>&#9733;</span></div>
<div class="rating-ranks"><ul><li><strong>1234</strong> Global Rank</li><li><strong>56</strong> Country Rank</li></ul></div>
<section><h3>Total Problems Solved: 210</h3></section>
<div class="contest-participated-count">No. of Contests Participated: <b>34</b></div>
"""


def test_codechef_profile_page_is_parsed():
    result = parse_profile_page(CODECHEF_PAGE, "alice_cc")
    stats = result.stats
    assert result.confidence is Confidence.FULL
    assert (stats.rating, stats.max_rating, stats.rank) == (1876, 1902, "3*")
    assert stats.extras["global_rank"] == 1234
    assert stats.extras["country_rank"] == 56
    assert stats.problems_solved == 210
    assert stats.contests == 34


def test_codechef_fetch_scores_profile():
    session = FakeSession({("GET", "/users/alice_cc"): FakeResponse(200, text=CODECHEF_PAGE)})
    profile = CodeChefFetcher(session=session).fetch("alice_cc")
    # 15 * 210 + 0.001 * 476^2 + 30 * 34
    assert profile.score == 4396.58


def test_codechef_redirect_is_not_found():
    session = FakeSession({("GET", "/users/"): FakeResponse(200, text="<html>home</html>", url="https://www.codechef.com/")})
    with pytest.raises(NotFound):
        CodeChefFetcher(session=session).fetch("ghost")


def test_codechef_unrecognised_page_is_inconclusive():
    session = FakeSession({("GET", "/users/"): FakeResponse(200, text="<html><p>maintenance</p></html>")})
    with pytest.raises(UpstreamUnavailable):
        CodeChefFetcher(session=session).fetch("alice_cc")


# ---------------------------------------------------------------------------
# GeeksforGeeks
# ---------------------------------------------------------------------------


def test_geeksforgeeks_community_api_profile():
    session = FakeSession({("GET", "vercel.app"): FakeResponse(200, {
        "info": {"userName": "bob", "codingScore": 250, "totalProblemsSolved": 80, "instituteRank": "12",
                 "currentStreak": "3", "maxStreak": "9", "monthlyScore": "40"},
        "solvedStats": {"school": {"count": 5}, "basic": {"count": 15}, "easy": {"count": 30},
                        "medium": {"count": 25}, "hard": {"count": 5}},
    })})
    profile = GeeksforGeeksFetcher(session=session).fetch("bob")
    assert profile.confidence is Confidence.FULL
    assert profile.problems_solved == 80
    assert profile.difficulty["medium"] == 25
    assert profile.extras["institute_rank"] == 12
    assert profile.score == 800.0


def test_geeksforgeeks_api_not_found():
    session = FakeSession({("GET", "vercel.app"): FakeResponse(200, {"error": "User not found"})})
    with pytest.raises(NotFound):
        GeeksforGeeksFetcher(session=session).fetch("nobody")


def test_geeksforgeeks_empty_api_body_defers_to_profile_page():
    session = FakeSession({
        ("GET", "vercel.app"): FakeResponse(200, {}),
        ("GET", "geeksforgeeks.org/user/"): FakeResponse(404, text="not here"),
    })
    with pytest.raises(NotFound):
        GeeksforGeeksFetcher(session=session).fetch("nobody")


# ---------------------------------------------------------------------------
# HackerRank
# ---------------------------------------------------------------------------


def test_hackerrank_profile_and_badges():
    session = FakeSession({
        ("GET", "/profile"): FakeResponse(200, {"model": {"username": "carol", "country": "India", "level": 5}}),
        ("GET", "/badges"): FakeResponse(200, {"status": True, "models": [
            {"badge_name": "Python", "category_name": "Language Proficiency", "solved": 40, "stars": 5, "total_challenges": 115},
            {"badge_name": "Problem Solving", "category_name": "Specialized Skills", "solved": 25, "stars": 3, "total_challenges": 563},
        ]}),
    })
    profile = HackerRankFetcher(session=session).fetch("carol")
    assert profile.confidence is Confidence.FULL
    assert profile.problems_solved == 65
    assert profile.extras["stars"] == 8
    assert "Python" in profile.extras["language_badges"]
    assert profile.score == 650.0


def test_hackerrank_badge_failure_leaves_volume_unread():
    session = FakeSession({
        ("GET", "/profile"): FakeResponse(200, {"model": {"username": "carol", "country": "India"}}),
        ("GET", "/badges"): FakeResponse(403, {"status": False}),
    })
    profile = HackerRankFetcher(session=session).fetch("carol")
    assert profile.strategy == "profile_and_badges"
    assert profile.partial
    assert profile.problems_solved is None
    assert profile.extras["country"] == "India"


def test_hackerrank_missing_profile_is_not_found():
    session = FakeSession({("GET", "/profile"): FakeResponse(404, {"message": "not found"})})
    with pytest.raises(NotFound):
        HackerRankFetcher(session=session).fetch("nobody")


def test_hackerrank_empty_badge_listing_does_not_confirm_existence():
    session = FakeSession({
        ("GET", "/profile"): FakeResponse(403, text="forbidden"),
        ("GET", "/badges"): FakeResponse(200, {"status": True, "models": []}),
    })
    with pytest.raises(UpstreamUnavailable):
        HackerRankFetcher(session=session).fetch("carol")


# ---------------------------------------------------------------------------
# GitHub
# ---------------------------------------------------------------------------


def test_github_graphql_profile():
    session = FakeSession({("POST", "graphql"): FakeResponse(200, {"data": {"user": {
        "login": "dave",
        "contributionsCollection": {"contributionCalendar": {"totalContributions": 321}},
        "repositories": {"totalCount": 2, "nodes": [{"stargazerCount": 10}, {"stargazerCount": 4}]},
        "followers": {"totalCount": 7},
        "following": {"totalCount": 1},
    }}})})
    profile = GitHubFetcher(session=session, token="t0ken").fetch("dave")
    assert profile.confidence is Confidence.FULL
    assert profile.score == 321.0
    assert profile.extras["stars"] == 14
    assert session.calls[0][2]["headers"]["Authorization"] == "bearer t0ken"


def test_github_graphql_not_found():
    session = FakeSession({("POST", "graphql"): FakeResponse(200, {
        "data": {"user": None}, "errors": [{"type": "NOT_FOUND", "message": "Could not resolve to a User"}],
    })})
    with pytest.raises(NotFound):
        GitHubFetcher(session=session, token="t0ken").fetch("ghost")


def test_github_rest_without_token_is_partial():
    session = FakeSession()
    session.route("GET", "/users/dave/repos", FakeResponse(200, [
        {"stargazers_count": 3}, {"stargazers_count": 9, "fork": True},
    ]))
    session.route("GET", "/users/dave", FakeResponse(200, {"login": "dave", "public_repos": 2, "followers": 1}))
    profile = GitHubFetcher(session=session).fetch("dave")
    assert profile.strategy == "rest"
    assert profile.partial
    # REST has no contribution count; the stored one is kept on merge
    assert profile.problems_solved is None
    assert profile.extras["stars"] == 3
    assert all(method == "GET" for method, _, _ in session.calls)


def test_github_rest_not_found():
    session = FakeSession({("GET", "/users/"): FakeResponse(404, {"message": "Not Found"})})
    with pytest.raises(NotFound):
        GitHubFetcher(session=session).fetch("ghost")


def test_github_exhausted_quota_is_rate_limited():
    reset = str(int(time.time()) + 120)
    session = FakeSession({("GET", "/users/"): FakeResponse(
        403, {"message": "API rate limit exceeded"}, headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": reset},
    )})
    with pytest.raises(RateLimited) as info:
        GitHubFetcher(session=session).fetch("dave")
    assert info.value.retry_after > 0
