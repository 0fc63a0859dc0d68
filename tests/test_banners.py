from datetime import timedelta

from database import utcnow
from uploads import upload_dir


def banner_payload(title, **overrides):
    payload = {"title": title, "image": f"https://cdn.example.com/{title.lower()}.jpg"}
    payload.update(overrides)
    return payload


def test_public_list_shows_running_banners_in_position_order(client, admin_headers):
    tomorrow = (utcnow() + timedelta(days=1)).isoformat()
    yesterday = (utcnow() - timedelta(days=1)).isoformat()
    for payload in (
        banner_payload("Second", position=2),
        banner_payload("First", position=1),
        banner_payload("Hidden", enabled=False),
        banner_payload("Upcoming", start_date=tomorrow),
        banner_payload("Expired", start_date=(utcnow() - timedelta(days=3)).isoformat(), end_date=yesterday),
    ):
        assert client.post("/api/banners", json=payload, headers=admin_headers).status_code == 201

    public = client.get("/api/banners").json()
    assert [b["title"] for b in public["banners"]] == ["First", "Second"]
    assert public["banners"][0]["button_text"] == "Shop Now"

    everything = client.get("/api/banners/all", headers=admin_headers).json()
    assert everything["count"] == 5
    assert client.get("/api/banners/all", params={"enabled": False}, headers=admin_headers).json()["count"] == 1


def test_banner_admin_rules(client, admin_headers, customer_headers):
    assert client.post("/api/banners", json=banner_payload("Nope"), headers=customer_headers).status_code == 403
    assert client.post("/api/banners", json={"title": "No image"}, headers=admin_headers).status_code == 400

    backwards = banner_payload("Backwards", start_date=utcnow().isoformat(),
                               end_date=(utcnow() - timedelta(days=1)).isoformat())
    assert client.post("/api/banners", json=backwards, headers=admin_headers).status_code == 400

    banner = client.post("/api/banners", json=banner_payload("Sale"), headers=admin_headers).json()["banner"]
    res = client.put(f"/api/banners/{banner['id']}", json={"subtitle": "Up to 50% off", "position": 3},
                     headers=admin_headers)
    assert (res.json()["banner"]["subtitle"], res.json()["banner"]["position"]) == ("Up to 50% off", 3)
    assert client.get(f"/api/banners/{banner['id']}").json()["banner"]["title"] == "Sale"


def test_banner_image_upload_replaces_and_cleans_up(client, admin_headers):
    banner = client.post("/api/banners", json=banner_payload("Hero"), headers=admin_headers).json()["banner"]
    url = f"/api/banners/{banner['id']}/image"

    first = client.put(url, files={"file": ("hero.png", b"\x89PNG one", "image/png")}, headers=admin_headers)
    first_url = first.json()["banner"]["image"]
    assert first_url.startswith("/uploads/")
    first_file = upload_dir() / first_url.rsplit("/", 1)[1]
    assert first_file.exists()

    second = client.put(url, files={"file": ("hero2.png", b"\x89PNG two", "image/png")}, headers=admin_headers)
    second_file = upload_dir() / second.json()["banner"]["image"].rsplit("/", 1)[1]
    assert not first_file.exists()

    assert client.delete(f"/api/banners/{banner['id']}", headers=admin_headers).status_code == 200
    assert not second_file.exists()
    assert client.get(f"/api/banners/{banner['id']}").status_code == 404
