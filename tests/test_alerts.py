import requests

from buyback.monitoring.alerts import (
    ALERT_CRITICAL,
    AlertListener,
    TelegramBot,
    compose_buyback_alert,
    compose_circuit_breaker_alert,
)
from buyback.monitoring.events import BuybackExecuted, CircuitBreakerTriggered, ExecutionFailed

from conftest import E18, T0


class _Response:
    def raise_for_status(self):
        return None


class FakeSession:
    def __init__(self, error=None):
        self.error = error
        self.posts = []

    def post(self, url, json=None, timeout=None):
        self.posts.append({"url": url, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return _Response()


def _bot(session):
    return TelegramBot(token="123:abc", chat_id="42", _session=session)


def _executed():
    return BuybackExecuted(
        execution_id=3,
        bnb_amount=E18 + E18 // 2,
        tokens_received=98 * E18,
        price_per_token=98 * E18 * E18 // (E18 + E18 // 2),
        executor="keeper",
        timestamp=T0,
    )


def test_from_env_without_credentials_is_disabled(monkeypatch):
    monkeypatch.delenv("BUYBACK_TELEGRAM_TOKEN", raising=False)
    monkeypatch.delenv("BUYBACK_TELEGRAM_CHAT_ID", raising=False)
    bot = TelegramBot.from_env()
    assert not bot.enabled
    assert bot.send_message("hello") is False


def test_from_env_reads_credentials(monkeypatch):
    monkeypatch.setenv("BUYBACK_TELEGRAM_TOKEN", "t")
    monkeypatch.setenv("BUYBACK_TELEGRAM_CHAT_ID", "c")
    bot = TelegramBot.from_env(timeout=5)
    assert bot.enabled
    assert bot.timeout == 5


def test_send_posts_to_bot_api():
    session = FakeSession()
    assert _bot(session).send_message("hello", level=ALERT_CRITICAL)
    post = session.posts[0]
    assert post["url"] == "https://api.telegram.org/bot123:abc/sendMessage"
    assert post["json"]["chat_id"] == "42"
    assert post["json"]["text"].endswith("hello")
    assert post["timeout"] == 3


def test_send_failure_is_swallowed():
    assert _bot(FakeSession(error=requests.exceptions.Timeout())).send_message("x") is False
    assert _bot(FakeSession(error=requests.exceptions.ConnectionError("down"))).send_message("x") is False


def test_compose_messages():
    text = compose_buyback_alert(_executed(), "BNB", "CAKE")
    assert "#3" in text
    assert "1.5 BNB" in text
    assert "98 CAKE" in text

    text = compose_circuit_breaker_alert(CircuitBreakerTriggered("ConsecutiveFailures", T0 + 3600, T0))
    assert "ConsecutiveFailures" in text
    assert str(T0 + 3600) in text


def test_listener_routes_events():
    session = FakeSession()
    listener = AlertListener(_bot(session), notify_success=False)

    listener(_executed())
    assert session.posts == []

    listener(ExecutionFailed(execution_id=4, reason="SlippageExceeded", timestamp=T0))
    listener(CircuitBreakerTriggered(reason="ConsecutiveFailures", cooldown_until=T0 + 1, timestamp=T0))
    assert len(session.posts) == 2
    assert "SlippageExceeded" in session.posts[0]["json"]["text"]
    assert "CIRCUIT BREAKER" in session.posts[1]["json"]["text"]


def test_listener_on_engine_bus(make_engine):
    session = FakeSession()
    engine = make_engine()
    engine.events.subscribe(AlertListener(_bot(session)))
    engine.execute_buyback(now=T0)
    assert len(session.posts) == 1
    assert session.posts[0]["json"]["disable_notification"] is True
