from conftest import auth_header
from plantstore.models import User, UserRole


def test_regular_user_cannot_manage_coupons(client, user_token):
    response = client.get("/api/coupons", headers=auth_header(user_token))
    assert response.status_code == 403
    assert response.json() == {"message": "Not authorized as an admin", "code": "FORBIDDEN"}


def test_admin_can_manage_coupons(client, admin_token):
    response = client.get("/api/coupons", headers=auth_header(admin_token))
    assert response.status_code == 200
    assert response.json()["total"] == 0


def test_admin_login_reports_is_admin(client, admin_token):
    response = client.get("/api/auth/profile", headers=auth_header(admin_token))
    assert response.json()["isAdmin"] is True
    assert response.json()["role"] == "admin"


def test_demoted_admin_loses_access_immediately(client, admin_token, db):
    user = db.query(User).filter(User.email == "admin@x.com").one()
    user.role = UserRole.SELLER
    db.commit()

    response = client.get("/api/coupons", headers=auth_header(admin_token))
    assert response.status_code == 403


def test_admin_check_requires_authentication(client):
    assert client.get("/api/tax").status_code == 401
