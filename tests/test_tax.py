from conftest import auth_header

CA_RULE = {"name": "California sales tax", "region": "CA", "rate": 8.25, "type": "sales", "isDefault": True}


def create_rule(client, token, **overrides):
    return client.post("/api/tax", json=dict(CA_RULE, **overrides), headers=auth_header(token))


def calculate(client, region, subtotal, **extra):
    return client.post("/api/tax/calculate", json={"region": region, "subtotal": subtotal, **extra})


def test_calculate_with_default_rule(client, admin_token):
    assert create_rule(client, admin_token).status_code == 201

    response = calculate(client, "CA", 100)
    assert response.status_code == 200
    assert response.json() == {"region": "CA", "taxRate": 8.25, "taxableAmount": 100, "taxAmount": 8.25, "total": 108.25}


def test_calculate_unknown_region(client):
    response = calculate(client, "ZZ", 100)
    assert response.status_code == 404
    assert response.json()["message"] == "No tax rate found for this region"


def test_only_one_default_per_region(client, admin_token):
    first = create_rule(client, admin_token).json()
    second = create_rule(client, admin_token, name="CA updated", rate=9).json()
    create_rule(client, admin_token, name="Nevada", region="NV", rate=6.85)

    rules = client.get("/api/tax", params={"region": "CA"}, headers=auth_header(admin_token)).json()
    defaults = [rule["id"] for rule in rules if rule["isDefault"]]
    assert defaults == [second["id"]]
    assert calculate(client, "CA", 100).json()["taxAmount"] == 9

    # promoting the first rule again demotes the second
    client.put(f"/api/tax/{first['id']}", json={"isDefault": True}, headers=auth_header(admin_token))
    rules = client.get("/api/tax", params={"region": "CA"}, headers=auth_header(admin_token)).json()
    assert [rule["id"] for rule in rules if rule["isDefault"]] == [first["id"]]
    # other regions are untouched
    assert calculate(client, "NV", 100).json()["taxAmount"] == 6.85


def test_non_default_rules_are_not_used(client, admin_token):
    create_rule(client, admin_token, isDefault=False)
    assert calculate(client, "CA", 100).status_code == 404


def test_threshold_and_flat_rules(client, admin_token):
    create_rule(client, admin_token, region="OR", type="flat", rate=5, threshold=50)
    assert calculate(client, "OR", 40).json()["taxAmount"] == 0
    assert calculate(client, "OR", 400).json() == {
        "region": "OR",
        "taxRate": 5,
        "taxableAmount": 400,
        "taxAmount": 5,
        "total": 405,
    }


def test_customer_type_exemption(client, admin_token):
    create_rule(
        client,
        admin_token,
        exemptionRules=[{"condition": "customer_type", "value": "wholesale", "rate": 0}],
    )
    assert calculate(client, "CA", 100, customerType="wholesale").json()["taxAmount"] == 0
    assert calculate(client, "CA", 100, customerType="retail").json()["taxAmount"] == 8.25


def test_rate_is_bounded(client, admin_token):
    response = create_rule(client, admin_token, rate=150)
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_tax_administration_requires_admin(client, user_token):
    assert create_rule(client, user_token).status_code == 403


def test_get_update_delete(client, admin_token):
    headers = auth_header(admin_token)
    rule = create_rule(client, admin_token, rate=8.254).json()
    assert rule["rate"] == 8.25

    response = client.put(f"/api/tax/{rule['id']}", json={"rate": 7}, headers=headers)
    assert response.json()["rate"] == 7
    assert client.get(f"/api/tax/{rule['id']}", headers=headers).json()["name"] == "California sales tax"

    assert client.delete(f"/api/tax/{rule['id']}", headers=headers).status_code == 200
    assert client.get(f"/api/tax/{rule['id']}", headers=headers).status_code == 404
