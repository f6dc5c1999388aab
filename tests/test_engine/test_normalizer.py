"""
Tests for leads-list input normalization.
"""

import pytest

from tower.config.schema import LeadsVerdictConfig, TowerConfig
from tower.contracts import Lead, LeadsListRequest
from tower.engine.normalizer import (
    SOURCE_COUNTER,
    SOURCE_DELIVERED_MATCHING,
    SOURCE_LEADS,
    SOURCE_NONE,
    SOURCE_VERIFIED_EXACT,
    normalize_request,
    resolve_requested,
)


class TestRequestedCount:

    def test_user_count_wins(self):
        request = LeadsListRequest(
            requested_count_user=4,
            success_criteria={"target_count": 10},
            requested_count=20,
        )
        assert resolve_requested(request) == 4

    def test_success_criteria_next(self):
        request = LeadsListRequest(success_criteria={"target_count": 10}, requested_count=20)
        assert resolve_requested(request) == 10

    def test_requested_count_last(self):
        assert resolve_requested(LeadsListRequest(requested_count=20)) == 20

    def test_success_criteria_without_target_skipped(self):
        request = LeadsListRequest(success_criteria={"other": 1}, requested_count=7)
        assert resolve_requested(request) == 7

    def test_absent_everywhere_is_none(self):
        assert resolve_requested(LeadsListRequest()) is None


class TestDeliveredCount:

    def test_verified_exact_beats_everything(self):
        request = LeadsListRequest(
            verified_exact_count=3,
            delivered_matching=8,
            leads=[{"name": "A"}] * 10,
            delivered=12,
        )
        snapshot = normalize_request(request)
        assert snapshot.delivered == 3
        assert snapshot.delivered_source == SOURCE_VERIFIED_EXACT

    def test_delivered_matching_next(self):
        snapshot = normalize_request(LeadsListRequest(delivered_matching=8, delivered=12))
        assert snapshot.delivered == 8
        assert snapshot.delivered_source == SOURCE_DELIVERED_MATCHING

    def test_leads_are_filtered_before_counting(self):
        request = LeadsListRequest(
            leads=[{"name": "Plough"}, {"name": "Crown"}, {"name": "Pheasant"}],
            hard_constraints=["NAME_STARTS_WITH:P"],
            delivered=3,
        )
        snapshot = normalize_request(request)
        assert snapshot.delivered == 2
        assert snapshot.delivered_source == SOURCE_LEADS

    @pytest.mark.parametrize("field", ["accumulated_count", "delivered_count", "delivered"])
    def test_counter_fields(self, field):
        snapshot = normalize_request(LeadsListRequest(**{field: 6}))
        assert snapshot.delivered == 6
        assert snapshot.delivered_source == SOURCE_COUNTER

    def test_nothing_reported_is_zero(self):
        snapshot = normalize_request(LeadsListRequest())
        assert snapshot.delivered == 0
        assert snapshot.delivered_source == SOURCE_NONE

    def test_empty_lead_list_is_zero(self):
        snapshot = normalize_request(LeadsListRequest(leads=[], delivered=5))
        assert snapshot.delivered == 0
        assert snapshot.delivered_source == SOURCE_LEADS


class TestSnapshot:

    def test_radius_defaults_from_config(self):
        config = TowerConfig(leads=LeadsVerdictConfig(default_radius_km=8))
        assert normalize_request(LeadsListRequest(), config).radius_km == 8
        assert normalize_request(LeadsListRequest(radius_km=0), config).radius_km == 8
        assert normalize_request(LeadsListRequest(radius_km=12), config).radius_km == 12

    def test_hard_and_soft_views(self):
        snapshot = normalize_request(LeadsListRequest(
            hard_constraints=["NAME_STARTS_WITH:P"],
            soft_constraints=["LOCATION:Arundel"],
        ))
        assert [c.label for c in snapshot.hard_constraints] == ["NAME_STARTS_WITH(P)"]
        assert [c.label for c in snapshot.soft_constraints] == ["LOCATION(Arundel)"]

    def test_relaxed_fields(self):
        snapshot = normalize_request(LeadsListRequest(
            relaxed_constraints=["location", {"field": "prefix_filter"}, {"no_field": 1}],
        ))
        assert snapshot.relaxed_fields == ("location", "prefix_filter")

    def test_leads_tuple_or_none(self):
        assert normalize_request(LeadsListRequest()).leads is None
        snapshot = normalize_request(LeadsListRequest(leads=[Lead(name="A")]))
        assert isinstance(snapshot.leads, tuple)

    def test_snapshot_is_frozen(self):
        snapshot = normalize_request(LeadsListRequest(requested_count=1))
        with pytest.raises(Exception):
            snapshot.delivered = 10
