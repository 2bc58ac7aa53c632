from __future__ import annotations


def test_overview_metrics(client):
    response = client.get("/api/v1/sales/overview/metrics")
    assert response.status_code == 200
    payload = response.json()
    assert payload["data"]["totalClosedAcv"] == 3900
    assert payload["data"]["forecastAcv"] == 4410
    assert payload["data"]["weightedPipelineAcv"] == 510
    assert payload["data"]["yoyGrowth"] == 1002.5
    assert payload["pagination"] is None
    assert payload["meta"]["timeWindow"] == "all"


def test_overview_metrics_with_repeated_filters(client):
    response = client.get("/api/v1/sales/overview/metrics?year=2026&revenue_type=License&region=North%20America")
    assert response.status_code == 200
    payload = response.json()
    assert payload["data"]["totalClosedAcv"] == 2000
    assert payload["meta"]["timeWindow"] == "2026"


def test_funnel(client):
    response = client.get("/api/v1/sales/overview/funnel")
    assert response.status_code == 200
    stages = response.json()["data"]["stages"]
    assert [stage["stage"] for stage in stages] == ["Proposal", "Qualification", "Stalled"]


def test_key_deals_limit(client):
    response = client.get("/api/v1/sales/overview/key-deals?limit=1")
    assert response.status_code == 200
    deals = response.json()["data"]["deals"]
    assert [deal["id"] for deal in deals] == ["P-400"]
    assert deals[0]["unweightedValue"] == 1500


def test_closed_deals_are_paginated(client):
    response = client.get("/api/v1/sales/overview/closed-deals?page=1&page_size=2")
    assert response.status_code == 200
    payload = response.json()
    assert len(payload["data"]) == 2
    assert payload["pagination"]["totalItems"] == 3
    assert payload["pagination"]["totalPages"] == 2
    assert "subcategoryBreakdown" in payload["data"][0]


def test_deal_detail(client):
    response = client.get("/api/v1/sales/deals/C1")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["region"] == "Europe"
    assert data["closedAcv"] == 1500
    assert data["productSubCategory"] == "Payments"


def test_unknown_deal_returns_not_found_envelope(client):
    response = client.get("/api/v1/sales/deals/NOPE")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "not_found"


def test_quarterly_forecast(client):
    response = client.get("/api/v1/sales/forecast/quarterly")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["year"] == 2026
    assert data["quarters"][0]["yoyGrowth"] == 275.0
    assert data["quarters"][2]["weightedPipeline"] == 510


def test_regional_forecast(client):
    response = client.get("/api/v1/sales/forecast/regional")
    assert response.status_code == 200
    regions = {row["region"]: row for row in response.json()["data"]["regions"]}
    assert regions["North America"]["previousYearAcv"] == 400


def test_forecast_trend(client):
    response = client.get("/api/v1/sales/forecast/trend")
    assert response.status_code == 200
    months = response.json()["data"]["months"]
    assert months[8]["cumulativeForecast"] == 4010


def test_forecast_by_subcategory(client):
    response = client.get("/api/v1/sales/forecast/by-subcategory")
    assert response.status_code == 200
    rows = response.json()["data"]["subcategories"]
    assert rows[0]["subCategory"] == "Payments"
    assert rows[0]["percentOfTotal"] == 55.6


def test_forecast_simulation_uses_configured_defaults(client):
    response = client.get("/api/v1/sales/forecast/simulation")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["iterations"] == 500
    assert data["dealCount"] == 2
    assert data["expectedPipeline"] == 510


def test_forecast_simulation_rejects_tiny_iteration_counts(client):
    response = client.get("/api/v1/sales/forecast/simulation?iterations=5")
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "validation_error"


def test_pipeline_movement(client):
    response = client.get("/api/v1/sales/pipeline/movement")
    assert response.status_code == 200
    payload = response.json()
    data = payload["data"]
    assert data["prevLabel"] == "Apr'26"
    assert data["currLabel"] == "May'26"
    assert data["newDeals"] == {"count": 2, "value": 360}
    assert data["waterfall"][-1]["stepType"] == "final"
    assert payload["meta"]["source"] == "pipeline_snapshots"


def test_pipeline_movement_explicit_target(client):
    response = client.get("/api/v1/sales/pipeline/movement?target_month=2026-04")
    assert response.status_code == 200
    assert response.json()["data"]["targetMonth"] is None


def test_pipeline_movement_rejects_impossible_month(client):
    response = client.get("/api/v1/sales/pipeline/movement?target_month=2026-13")
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "bad_request"


def test_pipeline_movement_rejects_malformed_month(client):
    response = client.get("/api/v1/sales/pipeline/movement?target_month=May-2026")
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "validation_error"


def test_invalid_revenue_type_returns_validation_error(client):
    response = client.get("/api/v1/sales/overview/metrics?revenue_type=Services")
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "validation_error"


def test_pipeline_by_subcategory(client):
    response = client.get("/api/v1/sales/pipeline/by-subcategory")
    assert response.status_code == 200
    rows = response.json()["data"]["subcategories"]
    assert rows[0]["subCategory"] == "Unallocated"
    assert rows[0]["pipelineValue"] == 1700


def test_quota_salespeople(client):
    response = client.get("/api/v1/sales/quota/salespeople?sort_field=closedYtd&sort_direction=asc")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["mode"] == "computed"
    assert [row["closedYtd"] for row in data["salespeople"]] == [1000, 2000, 3000]


def test_quota_heatmap(client):
    response = client.get("/api/v1/sales/quota/heatmap?name_filter=bob")
    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data["monthLabels"]) == 12
    assert [row["name"] for row in data["rows"]] == ["Bob Jones"]
    assert data["rows"][0]["months"][4]["color"] == "green"
