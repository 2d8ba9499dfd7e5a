from artisan_market.config import get_settings


def ui_signup(client, role="customer", email=None, **fields):
    data = {
        "email": email or f"ui-{role}@example.com",
        "password": "secret123",
        "confirm_password": "secret123",
        "name": f"UI {role}",
        "role": role,
        "location": "Brooklyn, NY",
    }
    data.update(fields)
    return client.post("/ui/signup", data=data, follow_redirects=False)


def test_home_renders(client):
    r = client.get("/ui")
    assert r.status_code == 200
    assert "Artisan Market" in r.text
    assert "Sign in" in r.text


def test_signup_sets_session_cookie(client):
    r = ui_signup(client, "artisan")
    assert r.status_code == 303
    assert get_settings().session_cookie in client.cookies

    r = client.get("/ui")
    assert "My Products" in r.text
    assert "UI artisan" in r.text


def test_signup_validation_errors_render_inline(client):
    r = ui_signup(client, confirm_password="different")
    assert r.status_code == 400
    assert "Passwords do not match" in r.text

    r = ui_signup(client, password="abc", confirm_password="abc")
    assert r.status_code == 400
    assert "at least 6 characters" in r.text


def test_login_failure_and_logout(client):
    ui_signup(client)
    client.post("/ui/logout", follow_redirects=False)
    client.cookies.clear()

    r = client.post("/ui/login", data={"email": "ui-customer@example.com", "password": "nope-nope"}, follow_redirects=False)
    assert r.status_code == 401
    assert "invalid email or password" in r.text

    r = client.post("/ui/login", data={"email": "ui-customer@example.com", "password": "secret123"}, follow_redirects=False)
    assert r.status_code == 303
    assert client.get("/ui/orders", follow_redirects=False).status_code == 200

    client.post("/ui/logout", follow_redirects=False)
    assert client.get("/ui/orders", follow_redirects=False).status_code == 303


def test_artisan_manages_products_and_orders(client, signup):
    ui_signup(client, "artisan", email="maker@example.com")
    r = client.post("/ui/my-products", data={"name": "Oak Chair", "description": "Sturdy", "price": "120"}, follow_redirects=False)
    assert r.status_code == 303
    r = client.post("/ui/my-products", data={"name": "Bad", "price": "-1"})
    assert r.status_code == 400
    assert "Failed to save product" in r.text

    page = client.get("/ui/my-products")
    assert "Oak Chair" in page.text

    pid = client.get("/products", params={"q": "oak"}).json()[0]["id"]
    r = client.post("/ui/my-products", data={"product_id": pid, "name": "Oak Armchair", "price": "130"}, follow_redirects=False)
    assert r.status_code == 303
    assert "Oak Armchair" in client.get("/ui/marketplace", params={"q": "armchair"}).text

    customer = signup("customer")
    oid = client.post("/orders", json={"product_id": pid}, headers=customer).json()["id"]

    page = client.get("/ui/orders")
    assert "Incoming Orders" in page.text
    assert "Accept" in page.text and "Decline" in page.text

    r = client.post(f"/ui/orders/{oid}", data={"status": "completed"})
    assert r.status_code == 400
    assert "Failed to update order status" in r.text

    r = client.post(f"/ui/orders/{oid}", data={"status": "accepted"}, follow_redirects=False)
    assert r.status_code == 303
    assert "Mark Complete" in client.get("/ui/orders").text

    r = client.post(f"/ui/my-products/{pid}/delete", follow_redirects=False)
    assert r.status_code == 303
    assert "Oak Armchair" not in client.get("/ui/my-products").text


def test_customer_orders_from_marketplace(client, signup):
    artisan = signup("artisan")
    client.post("/products", json={"name": "Quilt", "description": "Patchwork", "price": "75"}, headers=artisan)
    client.post("/products", json={"name": "Lamp", "description": "Brass", "price": "40"}, headers=artisan)

    # anonymous visitors are sent to sign in
    r = client.post("/ui/marketplace/order", data={"product_id": 1}, follow_redirects=False)
    assert r.headers["location"] == "/ui/login"

    ui_signup(client, "customer")
    page = client.get("/ui/marketplace", params={"q": "QUILT"})
    assert "Quilt" in page.text and "Lamp" not in page.text
    assert ">Order</button>" in page.text

    pid = client.get("/products", params={"q": "quilt"}).json()[0]["id"]
    r = client.post("/ui/marketplace/order", data={"product_id": pid}, follow_redirects=False)
    assert r.status_code == 303
    assert "ordered=" in r.headers["location"]

    page = client.get("/ui/orders")
    assert "My Orders" in page.text
    assert "Quilt" in page.text and "Pending" in page.text
    assert "Accept" not in page.text


def test_profile_edit(client):
    ui_signup(client, "artisan")
    r = client.post("/ui/profile", data={"name": "Renamed", "location": "Queens, NY", "latitude": "40.7", "longitude": "-73.8", "description": "Weaver"}, follow_redirects=False)
    assert r.status_code == 303
    page = client.get("/ui/profile")
    assert "Renamed" in page.text and "Weaver" in page.text and "Artisan" in page.text

    r = client.post("/ui/profile", data={"name": "Renamed", "latitude": "40.7", "longitude": ""})
    assert r.status_code == 400


def test_map_lists_nearest_first(client, signup):
    signup("artisan", name="Far Potter", latitude=34.05, longitude=-118.24)
    signup("artisan", name="Near Weaver", latitude=40.73, longitude=-73.99)
    page = client.get("/ui/map")
    assert page.status_code == 200
    assert page.text.index("Near Weaver") < page.text.index("Far Potter")
    assert "mi" in page.text


def test_public_artisan_page(client, signup):
    headers = signup("artisan", name="Glass Studio", description="Blown glass")
    aid = client.get("/auth/me", headers=headers).json()["id"]
    page = client.get(f"/ui/artisans/{aid}")
    assert "Glass Studio" in page.text and "Blown glass" in page.text
    assert client.get("/ui/artisans/9999").status_code == 404
