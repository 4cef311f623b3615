from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from horoscope_store.memory import MemoryStorage
from horoscope_store.models import NewDeliveryLog, NewHoroscope, NewUser
from horoscope_store.sessions import MemorySessionStore


def test_concurrent_creations_never_share_an_id(memory_storage: MemoryStorage) -> None:
    total = 200

    def register(index: int) -> int:
        return memory_storage.create_user(NewUser(email=f"user{index}@example.com", zodiac_sign="libra")).id

    with ThreadPoolExecutor(max_workers=8) as pool:
        ids = list(pool.map(register, range(total)))

    assert len(set(ids)) == total
    assert sorted(ids) == list(range(1, total + 1))
    assert len(memory_storage.list_users()) == total


def test_concurrent_logs_and_horoscopes_have_distinct_ids(memory_storage: MemoryStorage) -> None:
    def record(index: int) -> tuple[int, int]:
        horoscope = memory_storage.create_horoscope(
            NewHoroscope(zodiac_sign="aries", date=f"2024-02-{index % 28 + 1:02d}", content={"n": index})
        )
        log = memory_storage.create_delivery_log(
            NewDeliveryLog(user_id=1, horoscope_id=horoscope.id, delivery_type="email", status="success")
        )
        return horoscope.id, log.id

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(pool.map(record, range(60)))

    assert len({horoscope_id for horoscope_id, _ in results}) == 60
    assert len({log_id for _, log_id in results}) == 60


def test_duplicate_emails_are_not_rejected(memory_storage: MemoryStorage) -> None:
    first = memory_storage.create_user(NewUser(email="twin@example.com", zodiac_sign="gemini"))
    second = memory_storage.create_user(NewUser(email="twin@example.com", zodiac_sign="gemini"))

    assert first.id != second.id
    assert memory_storage.get_user_by_email("twin@example.com") == first


def test_uses_in_memory_session_store_by_default() -> None:
    storage = MemoryStorage()
    try:
        assert isinstance(storage.session_store, MemorySessionStore)
    finally:
        storage.close()


def test_accepts_injected_session_store() -> None:
    sessions = MemorySessionStore()
    storage = MemoryStorage(session_store=sessions)
    try:
        assert storage.session_store is sessions
    finally:
        storage.close()
