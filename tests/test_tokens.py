"""
Anti-forgery token store tests.
"""

import threading

from webmcp_proxy.tokens import SessionTokenStore


class TestSessionTokenStore:

    def test_fixed_token_validates(self):
        store = SessionTokenStore("secret")
        assert store.validate("secret")
        assert not store.validate("Secret")
        assert not store.validate("")
        assert not store.validate(None)

    def test_nothing_validates_before_issue(self):
        store = SessionTokenStore()
        assert not store.validate("anything")
        assert not store.validate("")

    def test_issue_is_stable(self):
        store = SessionTokenStore()
        token = store.issue()
        assert token
        assert store.issue() == token
        assert store.validate(token)

    def test_fixed_token_is_issued(self):
        assert SessionTokenStore("secret").issue() == "secret"

    def test_concurrent_issue_yields_one_token(self):
        store = SessionTokenStore()
        issued = []

        def worker():
            issued.append(store.issue())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(set(issued)) == 1
