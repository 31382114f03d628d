"""
Service Registry Tests.

Lazy construction, shared component instances and backend selection.
"""

from datetime import timedelta

import pytest

from propintel.config import Settings
from propintel.exceptions import ConfigurationError
from propintel.feedback import Feedback
from propintel.identity import property_id
from propintel.predictions import ActualOutcome, StaticOutcomeSource
from propintel.registry import ServiceRegistry, get_services, reset_services
from propintel.storage import InMemoryStore, JsonFileStore


@pytest.fixture
def registry(settings) -> ServiceRegistry:
    return ServiceRegistry(settings=settings)


class TestLazyServices:

    def test_nothing_built_until_accessed(self, registry):
        assert registry._learning is None
        assert registry._stores == {}

    def test_services_are_singletons(self, registry):
        assert registry.regional is registry.regional
        assert registry.learning is registry.learning

    def test_orchestrator_shares_components(self, registry):
        learning = registry.learning

        assert learning.feedback is registry.feedback
        assert learning.feedback_analyzer is registry.feedback_analyzer
        assert learning.prompts is registry.prompts
        assert learning.comparables is registry.comparables
        assert learning.deepening is registry.deepening

    def test_feedback_store_uses_registry_settings(self, registry):
        assert registry.feedback._settings is registry.settings

    def test_named_store_is_opened_once(self, registry):
        store = registry.store("regional-knowledge")

        assert isinstance(store, InMemoryStore)
        assert registry.store("regional-knowledge") is store

    def test_outcome_source_reaches_tracker(self, settings, make_property, make_report, now):
        source = StaticOutcomeSource()
        registry = ServiceRegistry(settings=settings, outcome_source=source)
        prop = make_property()
        registry.learning.update_regional_knowledge("s1", prop, make_report(), now=now)
        source.register(property_id(prop.address, prop.city, prop.province), ActualOutcome(actual_price=300_000))

        run = registry.learning.validate_predictions(now + timedelta(days=31))

        assert run.validated == 1


class TestBackends:

    def test_json_backend_persists_between_registries(self, tmp_path):
        settings = Settings(storage_backend="json", data_dir=tmp_path)
        first = ServiceRegistry(settings=settings)
        first.feedback.submit(Feedback(session_id="s1", overall_rating=4))

        second = ServiceRegistry(settings=settings)

        assert isinstance(second.store("user-feedback"), JsonFileStore)
        assert second.feedback.get_by_session("s1").overall_rating == 4
        assert (tmp_path / "user-feedback.json").exists()

    def test_unknown_backend(self, tmp_path):
        registry = ServiceRegistry(settings=Settings(storage_backend="postgres", data_dir=tmp_path))
        with pytest.raises(ConfigurationError):
            registry.store("user-feedback")


class TestGlobalRegistry:

    def test_get_services_is_cached(self):
        reset_services()
        try:
            assert get_services() is get_services()
        finally:
            reset_services()

    def test_reset_builds_a_new_registry(self):
        reset_services()
        try:
            first = get_services()
            reset_services()
            assert get_services() is not first
        finally:
            reset_services()

    def test_global_registry_uses_environment_settings(self):
        reset_services()
        try:
            # LEARNING_STORAGE_BACKEND=memory is set by conftest
            assert isinstance(get_services().store("user-feedback"), InMemoryStore)
        finally:
            reset_services()
