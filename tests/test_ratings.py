from poster_shop import ratings
from poster_shop.models import ROLE_USER, UserRating, db
from poster_shop.security import Identity


def add_rating(app, user_id, poster_id, stars):
    with app.app_context():
        db.session.add(UserRating(user_id=user_id, poster_id=poster_id, num_stars=stars))
        db.session.commit()


def test_rating_twice_overwrites_stars(app, client, user_auth, make_poster):
    user_id, headers = user_auth
    poster_id = make_poster()

    first = client.post("/api/ratings", json={"posterId": poster_id, "numStars": 3}, headers=headers)
    second = client.post("/api/ratings", json={"posterId": poster_id, "numStars": 5}, headers=headers)

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.get_json()["rating"]["numStars"] == 5
    with app.app_context():
        stored = UserRating.query.filter_by(user_id=user_id, poster_id=poster_id).all()
        assert [rating.num_stars for rating in stored] == [5]


def test_rating_out_of_range_is_rejected(app, client, user_auth, make_poster):
    _, headers = user_auth
    poster_id = make_poster()

    for stars in (0, 6, 2.5, "three", None):
        response = client.post(
            "/api/ratings", json={"posterId": poster_id, "numStars": stars}, headers=headers
        )
        assert response.status_code == 400, stars

    with app.app_context():
        assert UserRating.query.count() == 0


def test_rating_requires_token(client, make_poster):
    poster_id = make_poster()

    assert client.post("/api/ratings", json={"posterId": poster_id, "numStars": 4}).status_code == 401


def test_rating_unknown_poster_is_not_found(client, user_auth):
    _, headers = user_auth

    response = client.post("/api/ratings", json={"posterId": 999, "numStars": 4}, headers=headers)

    assert response.status_code == 404


def test_user_cannot_rate_on_behalf_of_someone_else(client, user_auth, make_user, make_poster):
    _, headers = user_auth
    other_id = make_user()
    poster_id = make_poster()

    response = client.post(
        "/api/ratings",
        json={"userId": other_id, "posterId": poster_id, "numStars": 1},
        headers=headers,
    )

    assert response.status_code == 403


def test_average_rating(app, client, make_user, make_poster):
    poster_id = make_poster()
    for stars in (2, 4, 4):
        add_rating(app, make_user(), poster_id, stars)

    response = client.get(f"/api/ratings/poster/{poster_id}/average")

    assert response.status_code == 200
    assert response.get_json() == {"posterId": poster_id, "averageRating": 3.3, "totalRatings": 3}


def test_average_rating_without_ratings_is_zero(client, make_poster):
    poster_id = make_poster()

    response = client.get(f"/api/ratings/poster/{poster_id}/average")

    assert response.get_json() == {"posterId": poster_id, "averageRating": 0, "totalRatings": 0}


def test_public_rating_listings(app, client, make_user, make_poster):
    user_id = make_user()
    poster_id = make_poster()
    add_rating(app, user_id, poster_id, 4)

    everything = client.get("/api/ratings").get_json()["ratings"]
    for_poster = client.get(f"/api/ratings/poster/{poster_id}").get_json()["ratings"]
    single = client.get(f"/api/ratings/{everything[0]['id']}")

    assert everything[0]["user"] == {"id": user_id, "firstname": "Test", "lastname": "User1"}
    assert everything[0]["poster"]["id"] == poster_id
    assert for_poster[0]["numStars"] == 4
    assert single.status_code == 200
    assert client.get("/api/ratings/999").status_code == 404


def test_ratings_by_user_require_token(app, client, user_auth, make_poster):
    user_id, headers = user_auth
    poster_id = make_poster()
    add_rating(app, user_id, poster_id, 5)

    assert client.get(f"/api/ratings/user/{user_id}").status_code == 401
    response = client.get(f"/api/ratings/user/{user_id}", headers=headers)
    assert [rating["posterId"] for rating in response.get_json()["ratings"]] == [poster_id]


def test_delete_rating_is_admin_only(app, client, user_auth, admin_auth, make_poster):
    user_id, user_headers = user_auth
    _, admin_headers = admin_auth
    poster_id = make_poster()
    add_rating(app, user_id, poster_id, 2)
    with app.app_context():
        rating_id = UserRating.query.first().id

    assert client.delete(f"/api/ratings/{rating_id}", headers=user_headers).status_code == 403
    assert client.delete(f"/api/ratings/{rating_id}", headers=admin_headers).status_code == 200
    assert client.delete(f"/api/ratings/{rating_id}", headers=admin_headers).status_code == 404


def test_insert_losing_unique_race_overwrites_winner(app, make_user, make_poster, monkeypatch):
    user_id = make_user()
    poster_id = make_poster()
    add_rating(app, user_id, poster_id, 1)

    lookups = []
    real_find = ratings.find_rating

    def find_after_race(uid, pid):
        lookups.append((uid, pid))
        return None if len(lookups) == 1 else real_find(uid, pid)

    monkeypatch.setattr(ratings, "find_rating", find_after_race)
    identity = Identity(id=user_id, email="user@example.com", role=ROLE_USER)

    with app.app_context():
        rating, created, error = ratings.rate_poster(
            identity, {"posterId": poster_id, "numStars": 4}
        )

        assert error is None
        assert created is False
        assert rating.num_stars == 4
        assert UserRating.query.count() == 1
