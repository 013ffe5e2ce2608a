from sqlalchemy import select

from gallery_accounts.models import (
    CuratedFeed, Package, PackageRegistration, User, curated_feed_managers, package_owners,
)

from conftest import TEST_PASSWORD, auth_headers, make_user


async def _login(client, username, password=TEST_PASSWORD):
    res = await client.post("/auth/login", json={"username": username, "password": password})
    assert res.status_code == 200, res.text
    return {"Authorization": f"Bearer {res.json()['access_token']}"}


async def test_register_then_login_and_me(client, mailer):
    res = await client.post(
        "/auth/register",
        json={"username": "alice", "email": "alice@example.com", "password": "alices-password"},
    )
    assert res.status_code == 201
    assert res.json() == {
        "username": "alice",
        "pending_email_address": "alice@example.com",
        "confirmation_sent": True,
    }

    headers = await _login(client, "alice", "alices-password")
    me = await client.get("/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["email_address"] is None
    assert me.json()["pending_email_address"] == "alice@example.com"


async def test_register_duplicate_username(client):
    payload = {"username": "bob", "email": "bob@example.com", "password": "bobs-password"}
    assert (await client.post("/auth/register", json=payload)).status_code == 201
    res = await client.post("/auth/register", json=payload)
    assert res.status_code == 422
    assert res.json()["field"] == "username"


async def test_login_rejects_bad_password(client, store):
    await make_user(store, "carol", "carol@example.com")
    res = await client.post("/auth/login", json={"username": "carol", "password": "nope"})
    assert res.status_code == 401


async def test_account_requires_bearer_token(client):
    assert (await client.get("/account")).status_code == 401
    res = await client.get("/account", headers={"Authorization": "Bearer BOGUS"})
    assert res.status_code == 401


async def test_account_summary_lists_api_key_and_feeds(client, store, session):
    user = await make_user(store, "dave", "dave@example.com")
    feed = CuratedFeed(name="webstack")
    session.add_all([feed, CuratedFeed(name="unrelated")])
    await session.flush()
    await session.execute(
        curated_feed_managers.insert().values(curated_feed_key=feed.curated_feed_key, user_id=user.user_id)
    )
    await session.commit()

    res = await client.get("/account", headers=auth_headers(user))

    assert res.status_code == 200
    assert res.json() == {
        "username": "dave",
        "api_key": str(user.api_key),
        "curated_feeds": ["webstack"],
    }


async def test_generate_api_key(client, store):
    user = await make_user(store, "erin", "erin@example.com")
    old_key = str(user.api_key)

    res = await client.post("/account/api-key", headers=auth_headers(user))

    assert res.status_code == 200
    assert res.json()["api_key"] != old_key
    summary = await client.get("/account", headers=auth_headers(user))
    assert summary.json()["api_key"] == res.json()["api_key"]


async def test_edit_profile_email_change_flow(client, store, mailer):
    user = await make_user(store, "frank", "frank@example.com")
    headers = auth_headers(user)

    res = await client.put(
        "/account/profile",
        json={"email_address": "frank@newhost.example.org", "email_allowed": False},
        headers=headers,
    )
    assert res.status_code == 200
    body = res.json()
    assert body["confirmation_required"] is True
    assert body["email_address"] == "frank@example.com"
    assert body["pending_new_email_address"] == "frank@newhost.example.org"
    assert body["message"].startswith("Account settings saved! We sent a confirmation email")

    [mail] = mailer.of_kind("email_change_confirmation")
    assert mail["to_email"] == "frank@newhost.example.org"

    confirm = await client.get(mail["confirmation_url"].removeprefix("http://testserver"))
    assert confirm.status_code == 200
    assert confirm.json()["confirming_new_account"] is False

    [notice] = mailer.of_kind("email_change_notice")
    assert notice["to_email"] == "frank@example.com"

    profile = await client.get("/account/profile", headers=headers)
    assert profile.json() == {
        "email_address": "frank@newhost.example.org",
        "email_allowed": False,
        "pending_new_email_address": None,
    }


async def test_edit_profile_without_email_change(client, store, mailer):
    user = await make_user(store, "grace", "grace@example.com")

    res = await client.put(
        "/account/profile",
        json={"email_address": "grace@example.com", "email_allowed": False},
        headers=auth_headers(user),
    )

    assert res.json()["message"] == "Account settings saved!"
    assert res.json()["confirmation_required"] is False
    assert mailer.sent == []


async def test_edit_profile_taken_address(client, store):
    await make_user(store, "heidi", "heidi@example.com")
    user = await make_user(store, "ivan", "ivan@example.com")

    res = await client.put(
        "/account/profile",
        json={"email_address": "heidi@example.com", "email_allowed": True},
        headers=auth_headers(user),
    )

    assert res.status_code == 409
    assert res.json()["field"] == "email"


async def test_change_password_invalidates_old_tokens(client, store):
    await make_user(store, "judy", "judy@example.com")
    headers = await _login(client, "judy")

    wrong = await client.post(
        "/account/password/change",
        json={"old_password": "not-it", "new_password": "judys-new-password"},
        headers=headers,
    )
    assert wrong.status_code == 400
    assert wrong.json()["field"] == "old_password"

    res = await client.post(
        "/account/password/change",
        json={"old_password": TEST_PASSWORD, "new_password": "judys-new-password"},
        headers=headers,
    )
    assert res.status_code == 200

    stale = await client.get("/auth/me", headers=headers)
    assert stale.status_code == 401
    assert stale.json()["detail"] == "Token invalidated"

    fresh = await _login(client, "judy", "judys-new-password")
    assert (await client.get("/auth/me", headers=fresh)).status_code == 200


async def test_password_reset_invalidates_access_tokens(client, store, mailer):
    await make_user(store, "kim", "kim@example.com")
    headers = await _login(client, "kim")

    await client.post("/account/password/forgot", json={"email": "kim@example.com"})
    [mail] = mailer.of_kind("password_reset")
    res = await client.post(
        mail["reset_url"].removeprefix("http://testserver"), json={"new_password": "kims-new-password"}
    )
    assert res.status_code == 200

    assert (await client.get("/auth/me", headers=headers)).status_code == 401


async def test_confirmation_required_flow(client, store, mailer):
    user = await make_user(store, "leo", "leo@example.com", confirmed=False)
    headers = auth_headers(user)

    res = await client.get(
        "/account/confirmation-required",
        params={"user_action": "upload", "return_url": "//evil.example.com"},
        headers=headers,
    )
    assert res.json() == {
        "confirmed": False,
        "mail_sent": False,
        "pending_email_address": "leo@example.com",
        "user_action": "upload",
        "return_url": "/",
    }

    res = await client.post(
        "/account/confirmation-required", params={"return_url": "/packages/upload"}, headers=headers
    )
    assert res.json()["mail_sent"] is True
    assert res.json()["return_url"] == "/packages/upload"
    [mail] = mailer.of_kind("confirmation")
    assert mail["to_email"] == "leo@example.com"


async def test_confirmation_required_when_already_confirmed(client, store):
    user = await make_user(store, "mia", "mia@example.com")

    res = await client.get(
        "/account/confirmation-required", params={"return_url": "/account"}, headers=auth_headers(user)
    )

    assert res.json() == {"confirmed": True, "return_url": "/account"}


async def _seed_packages(session, owner):
    web = PackageRegistration(id="WebKit", download_count=120)
    tools = PackageRegistration(id="Tools", download_count=30)
    hidden = PackageRegistration(id="Hidden", download_count=999)
    session.add_all([web, tools, hidden])
    await session.flush()
    session.add_all(
        [
            Package(registration_key=web.registration_key, version="1.9.0", download_count=100),
            Package(registration_key=web.registration_key, version="1.10.0", download_count=15),
            Package(registration_key=web.registration_key, version="1.10.0-beta", download_count=5),
            Package(registration_key=tools.registration_key, version="0.1.0", download_count=30),
            Package(registration_key=hidden.registration_key, version="1.0.0", listed=False, download_count=999),
        ]
    )
    for reg in (web, tools, hidden):
        await session.execute(
            package_owners.insert().values(registration_key=reg.registration_key, user_id=owner.user_id)
        )
    await session.commit()


async def test_my_packages_include_unlisted(client, store, session):
    user = await make_user(store, "nia", "nia@example.com")
    await _seed_packages(session, user)

    res = await client.get("/account/packages", headers=auth_headers(user))

    ids = [(p["id"], p["version"]) for p in res.json()["packages"]]
    assert ("Hidden", "1.0.0") in ids
    assert len(ids) == 5
    webkit = [p for p in res.json()["packages"] if p["id"] == "WebKit"]
    assert {p["download_count"] for p in webkit} == {120}


async def test_public_profile(client, store, session):
    user = await make_user(store, "olga", "olga@example.com")
    await _seed_packages(session, user)

    res = await client.get("/profiles/olga")

    assert res.status_code == 200
    assert res.json() == {
        "username": "olga",
        "email_address": "olga@example.com",
        "packages": [
            {"id": "Tools", "version": "0.1.0", "total_download_count": 30},
            {"id": "WebKit", "version": "1.10.0", "total_download_count": 120},
        ],
        "total_package_download_count": 150,
    }


async def test_public_profile_hides_email_when_not_allowed(client, store, session):
    await make_user(store, "pete", "pete@example.com")
    res = await session.execute(select(User).where(User.username == "pete"))
    res.scalar_one().email_allowed = False
    await session.commit()

    res = await client.get("/profiles/pete")
    assert res.json()["email_address"] is None
    assert res.json()["packages"] == []

    assert (await client.get("/profiles/nobody")).status_code == 404
