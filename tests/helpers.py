import json

import requests


AUTH0_DOMAIN = "upstandfm.eu.auth0.com"
TOKEN_ENDPOINT = "https://upstandfm.eu.auth0.com/oauth/token"


def make_response(status_code, body=None, url=""):
    """Build a real requests.Response so .ok/.json()/.text behave as in production."""
    resp = requests.Response()
    resp.status_code = status_code
    resp.url = url
    resp._content = b"" if body is None else json.dumps(body).encode("utf-8")
    resp.encoding = "utf-8"
    return resp


class FakeSession:
    """
    Stand-in for requests.Session that answers from a routing table.

    Routes are keyed by (METHOD, url); each value is a response or a list of
    responses consumed in order. Every call is recorded in self.calls.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def request(self, method, url, headers=None, json=None, timeout=None, **kwargs):
        self.calls.append({"method": method, "url": url, "headers": headers or {}, "json": json})
        route = self.routes.get((method, url))
        if route is None:
            raise AssertionError(f"Unexpected {method} {url}")
        if isinstance(route, list):
            return route.pop(0)
        return route

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)

    def urls(self, method=None):
        return [call["url"] for call in self.calls if method is None or call["method"] == method]
