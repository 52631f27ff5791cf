from dataclasses import replace
from uuid import UUID, uuid4

from linkhub.services.deeplink import DeeplinkConfig
from linkhub.services.dispatcher import RedirectDispatcher, RedirectOutcome
from linkhub.services.stores import ShortLinkEntry, TargetKind

IPHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 15_0 like Mac OS X)"


class FakeLinkStore:
    def __init__(self, name: str, entries: list[ShortLinkEntry] | None = None) -> None:
        self.name = name
        self.entries = {entry.short_code: entry for entry in entries or []}
        self.lookups: list[str] = []

    async def find_active(self, short_code: str) -> ShortLinkEntry | None:
        self.lookups.append(short_code)
        entry = self.entries.get(short_code)
        if entry is None or not entry.is_active:
            return None
        return entry

    async def increment_clicks(self, entry_id: UUID) -> None:
        for code, entry in self.entries.items():
            if entry.id == entry_id:
                self.entries[code] = replace(entry, click_count=entry.click_count + 1)


class FailingLinkStore(FakeLinkStore):
    async def find_active(self, short_code: str) -> ShortLinkEntry | None:
        raise ConnectionError("database unavailable")


class FakeDeeplinkStore:
    def __init__(self, configs: dict[UUID, DeeplinkConfig] | None = None) -> None:
        self.configs = configs or {}

    async def get(self, link_id: UUID) -> DeeplinkConfig | None:
        return self.configs.get(link_id)


def make_entry(short_code: str = "abc123", **kwargs) -> ShortLinkEntry:
    values = {
        "id": uuid4(),
        "short_code": short_code,
        "owner_id": uuid4(),
        "target_kind": TargetKind.PLAIN,
        "original_url": "https://example.com",
        "click_count": 0,
        "is_active": True,
    }
    values.update(kwargs)
    return ShortLinkEntry(**values)


def make_dispatcher(short_links=None, links=None, deeplinks=None) -> RedirectDispatcher:
    return RedirectDispatcher(
        short_links=short_links or FakeLinkStore("short_links"),
        links=links or FakeLinkStore("links"),
        deeplinks=deeplinks or FakeDeeplinkStore(),
    )


async def test_unknown_code_redirects_home():
    decision = await make_dispatcher().dispatch("nope42", IPHONE)

    assert decision.outcome is RedirectOutcome.NOT_FOUND
    assert decision.location == "/"
    assert decision.entry is None


async def test_plain_link_redirects_to_original_url():
    store = FakeLinkStore("short_links", [make_entry()])

    decision = await make_dispatcher(short_links=store).dispatch("abc123", IPHONE)

    assert decision.outcome is RedirectOutcome.RESOLVED
    assert decision.location == "https://example.com"


async def test_two_visits_count_two_clicks():
    store = FakeLinkStore("short_links", [make_entry()])
    dispatcher = make_dispatcher(short_links=store)

    await dispatcher.dispatch("abc123", IPHONE)
    await dispatcher.dispatch("abc123", "")

    assert store.entries["abc123"].click_count == 2


async def test_falls_back_to_links_namespace():
    short_links = FakeLinkStore("short_links")
    links = FakeLinkStore("links", [make_entry("qr0001", target_kind=TargetKind.QR)])

    decision = await make_dispatcher(short_links=short_links, links=links).dispatch("qr0001", "")

    assert decision.outcome is RedirectOutcome.RESOLVED
    assert short_links.lookups == ["qr0001"]
    assert links.entries["qr0001"].click_count == 1


async def test_short_links_namespace_wins():
    short_links = FakeLinkStore("short_links", [make_entry(original_url="https://first.example")])
    links = FakeLinkStore("links", [make_entry(original_url="https://second.example")])

    decision = await make_dispatcher(short_links=short_links, links=links).dispatch("abc123", "")

    assert decision.location == "https://first.example"
    assert links.lookups == []
    assert links.entries["abc123"].click_count == 0


async def test_inactive_link_is_not_found():
    store = FakeLinkStore("short_links", [make_entry(is_active=False)])

    decision = await make_dispatcher(short_links=store).dispatch("abc123", IPHONE)

    assert decision.outcome is RedirectOutcome.NOT_FOUND
    assert decision.location == "/"
    assert store.entries["abc123"].click_count == 0


async def test_deeplink_resolves_by_platform():
    link_id = uuid4()
    store = FakeLinkStore(
        "short_links",
        [make_entry(target_kind=TargetKind.DEEPLINK, link_id=link_id)],
    )
    deeplinks = FakeDeeplinkStore(
        {
            link_id: DeeplinkConfig(
                original_url="https://example.com",
                ios_url="https://apps.apple.com/app/test",
            )
        }
    )

    decision = await make_dispatcher(short_links=store, deeplinks=deeplinks).dispatch("abc123", IPHONE)

    assert decision.location == "https://apps.apple.com/app/test"


async def test_deeplink_without_config_uses_original_url():
    store = FakeLinkStore(
        "short_links",
        [make_entry(target_kind=TargetKind.DEEPLINK, link_id=uuid4())],
    )

    decision = await make_dispatcher(short_links=store).dispatch("abc123", IPHONE)

    assert decision.outcome is RedirectOutcome.RESOLVED
    assert decision.location == "https://example.com"


async def test_store_failure_degrades_to_home():
    decision = await make_dispatcher(short_links=FailingLinkStore("short_links")).dispatch("abc123", IPHONE)

    assert decision.outcome is RedirectOutcome.ERROR_DEGRADED
    assert decision.location == "/"


async def test_custom_home_url():
    dispatcher = RedirectDispatcher(
        short_links=FakeLinkStore("short_links"),
        links=FakeLinkStore("links"),
        deeplinks=FakeDeeplinkStore(),
        home_url="https://linkhub.test/",
    )

    decision = await dispatcher.dispatch("missing", "")

    assert decision.location == "https://linkhub.test/"
