from unittest.mock import MagicMock, patch

import pytest
import requests

from conftest import PORTAL, FakeTransport, respond
from src.assignment_sync.errors import RedirectLoop, TransientError, TransportError
from src.assignment_sync.http import AuthSession, HttpResponse, RequestsTransport


class TestAuthSession:
    def test_merge_last_value_wins(self):
        session = AuthSession()
        session.merge(["SID=one; Path=/; HttpOnly", "lang=ja", "SID=two; Secure"])
        assert session.cookies == {"SID": "two", "lang": "ja"}
        assert session.cookie_header() == "SID=two; lang=ja"

    def test_merge_ignores_garbage(self):
        session = AuthSession()
        session.merge(["novalue", "=orphan", ""])
        assert session.cookies == {}


class TestSessionClient:
    def test_headers_carry_cookies_and_referer(self, make_client):
        transport = FakeTransport({("GET", PORTAL + "/a"): respond()})
        client = make_client(transport)
        session = AuthSession(cookies={"SID": "abc"})

        client.send(session, PORTAL + "/a")

        _, _, headers, _ = transport.calls[0]
        assert headers["Cookie"] == "SID=abc"
        assert headers["Referer"] == PORTAL + "/a"
        assert headers["User-Agent"] == client.config.user_agents[0]

    def test_no_cookie_header_for_empty_jar(self, make_client):
        transport = FakeTransport({("GET", PORTAL + "/a"): respond()})
        make_client(transport).send(AuthSession(), PORTAL + "/a")
        assert "Cookie" not in transport.calls[0][2]

    def test_cookies_from_every_hop_are_kept(self, make_client):
        transport = FakeTransport(
            {
                ("GET", PORTAL + "/start"): respond(302, location="/next", cookies=["a=1"]),
                ("GET", PORTAL + "/next"): respond(302, location=PORTAL + "/end", cookies=["b=2"]),
                ("GET", PORTAL + "/end"): respond(200, body="done", cookies=["a=3"]),
            }
        )
        session = AuthSession()

        response = make_client(transport).send(session, PORTAL + "/start", follow_redirects=True)

        assert response.body == "done"
        assert session.cookies == {"a": "3", "b": "2"}
        # cookies set mid-chain are sent on the following hop
        assert transport.calls[2][2]["Cookie"] == "a=1; b=2"

    def test_redirect_not_followed_by_default(self, make_client):
        transport = FakeTransport({("GET", PORTAL + "/start"): respond(302, location="/next")})
        response = make_client(transport).send(AuthSession(), PORTAL + "/start")
        assert response.status_code == 302
        assert len(transport.calls) == 1

    def test_post_becomes_get_after_redirect(self, make_client):
        transport = FakeTransport(
            {
                ("POST", PORTAL + "/form"): respond(303, location="/result"),
                ("GET", PORTAL + "/result"): respond(200, body="ok"),
            }
        )
        make_client(transport).send(
            AuthSession(), PORTAL + "/form", method="POST", body="x=1", follow_redirects=True
        )
        assert transport.calls[1][0] == "GET"
        assert transport.calls[1][3] is None

    def test_port_443_is_stripped(self, make_client):
        transport = FakeTransport({("GET", PORTAL + "/a"): respond()})
        make_client(transport).send(AuthSession(), "https://rpwebcls.meijo-u.ac.jp:443/a")
        assert transport.urls() == [PORTAL + "/a"]

    def test_redirect_chain_longer_than_cap_raises(self, make_client):
        def hop(method, url, headers, body):
            n = int(url.rsplit("/", 1)[1])
            return respond(302, location=f"/{n + 1}")

        transport = FakeTransport(fallback=hop)
        with pytest.raises(RedirectLoop):
            make_client(transport).send(AuthSession(), PORTAL + "/0", follow_redirects=True)
        # initial request + max_redirects hops
        assert len(transport.calls) == 16

    def test_non_2xx_is_returned(self, make_client):
        transport = FakeTransport({("GET", PORTAL + "/gone"): respond(404, body="missing")})
        response = make_client(transport).send(AuthSession(), PORTAL + "/gone")
        assert response.status_code == 404


class TestHttpResponse:
    def test_is_redirect_needs_location(self):
        assert HttpResponse(status_code=302, url="u", headers={"location": "/x"}).is_redirect
        assert not HttpResponse(status_code=302, url="u").is_redirect
        assert not HttpResponse(status_code=200, url="u", headers={"location": "/x"}).is_redirect


class TestRequestsTransport:
    def test_never_lets_requests_follow_redirects(self):
        fake = MagicMock()
        fake.status_code = 302
        fake.headers = {"Location": "/next", "Content-Type": "text/html"}
        fake.text = ""
        fake.raw.headers.getlist.return_value = ["SID=1; Path=/", "lang=ja"]

        with patch("src.assignment_sync.http.requests.request", return_value=fake) as request:
            response = RequestsTransport(timeout=5)("GET", PORTAL + "/a", {}, None)

        assert request.call_args.kwargs["allow_redirects"] is False
        assert request.call_args.kwargs["timeout"] == 5
        assert response.header("Location") == "/next"
        assert response.set_cookies == ["SID=1; Path=/", "lang=ja"]

    def test_connection_errors_become_transient(self):
        transport = RequestsTransport()
        with patch.object(RequestsTransport.__call__.retry, "sleep", lambda seconds: None), patch(
            "src.assignment_sync.http.requests.request",
            side_effect=requests.ConnectionError("reset"),
        ) as request:
            with pytest.raises(TransientError):
                transport("GET", PORTAL + "/a", {}, None)
        assert request.call_count == 3

    @pytest.mark.parametrize(
        "error",
        [
            requests.exceptions.ChunkedEncodingError("Connection broken: IncompleteRead"),
            requests.exceptions.ContentDecodingError("incorrect header check"),
            requests.exceptions.InvalidURL("bad url"),
        ],
    )
    def test_other_request_errors_fail_without_retry(self, error):
        with patch(
            "src.assignment_sync.http.requests.request", side_effect=error
        ) as request:
            with pytest.raises(TransportError):
                RequestsTransport()("GET", PORTAL + "/a", {}, None)
        assert request.call_count == 1
