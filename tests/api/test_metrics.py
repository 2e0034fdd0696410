def test_metrics_exposed(api_client):
    api_client.post("/auth/signup", json={"name": "Ann", "email": "ann@x.com", "password": "secret1"})
    api_client.post("/auth/login", json={"email": "nobody@x.com", "password": "secret1"})

    response = api_client.get("/metrics/")
    assert response.status_code == 200
    assert "taskpilot_http_requests_total" in response.text
    assert 'taskpilot_auth_failures_total{error="invalid_credentials"}' in response.text
    assert 'otp_issued_total{purpose="signup"}' in response.text
