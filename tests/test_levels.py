"""
Tests for position level resolution, the LLM client and the
classification orchestrator.
"""

import threading
from datetime import date
from types import SimpleNamespace

import pytest

from tgjobads.levels.client import ClassificationError, LlmLevelClassifier, parse_level_response
from tgjobads.levels.resolver import RuleBasedClassifier, resolve_from_tags, resolve_tag
from tgjobads.models import Ad, PositionLevel, ProcessingStatus, SalaryRecord, VectorizationModelParams
from tgjobads.retry import CircuitBreaker
from pipelines.enrichment.level_classification import LevelClassificationOrchestrator
from pipelines.versioning.version_decider import ModelVersionManager

from conftest import BASE_AD_TEXT, OTHER_AD_TEXT, THIRD_AD_TEXT


def _ads(*texts):
    return [Ad(id=f"ad-{i}", date=date(2025, 3, i + 1), text=t) for i, t in enumerate(texts)]


def _orchestrator(classifier, classifier_version=1, **kwargs):
    versions = ModelVersionManager(VectorizationModelParams(), classifier_version=classifier_version)
    kwargs.setdefault("base_delay", 0)
    kwargs.setdefault("timeout", 5)
    return LevelClassificationOrchestrator(classifier, versions, **kwargs)


class TestTagResolver:
    """Test hashtag rules."""

    @pytest.mark.parametrize("tag,level", [
        ("#Senior", PositionLevel.SENIOR),
        ("#senior__developer", PositionLevel.SENIOR),
        ("#team_lead", PositionLevel.LEAD),
        ("#middle", PositionLevel.MIDDLE),
        ("#джун", PositionLevel.JUNIOR),
        ("#стажёр", PositionLevel.INTERN),
        ("#javaarchitect", PositionLevel.ARCHITECT),
        ("#productmanager", PositionLevel.MANAGER),
        ("#python", PositionLevel.UNKNOWN),
        ("#", PositionLevel.UNKNOWN),
    ])
    def test_resolve_tag(self, tag, level):
        assert resolve_tag(tag) is level

    def test_highest_rank_wins(self):
        assert resolve_from_tags(["#middle", "#senior", "#python"]) is PositionLevel.SENIOR
        assert resolve_from_tags([]) is PositionLevel.UNKNOWN

    def test_rule_based_classifier(self):
        classifier = RuleBasedClassifier()
        assert classifier.classify(BASE_AD_TEXT) is PositionLevel.SENIOR
        assert classifier.classify(OTHER_AD_TEXT) is PositionLevel.MIDDLE
        assert classifier.classify(THIRD_AD_TEXT) is PositionLevel.JUNIOR
        assert classifier.classify("no tags") is PositionLevel.UNKNOWN


class TestLlmClient:
    """Test the LLM classifier against a stub client."""

    def _client(self, content, calls):
        def create(**kwargs):
            calls.append(kwargs)
            message = SimpleNamespace(content=content)
            return SimpleNamespace(choices=[SimpleNamespace(message=message)])
        return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))

    def test_parse_response(self):
        assert parse_level_response('{"pl": 4}') is PositionLevel.SENIOR
        assert parse_level_response('{"pl":0}') is PositionLevel.UNKNOWN

    @pytest.mark.parametrize("raw", [None, "", "not json", '{"pl": 9}', '{"level": 3}'])
    def test_invalid_response(self, raw):
        with pytest.raises(ClassificationError):
            parse_level_response(raw)

    def test_classify(self):
        calls = []
        classifier = LlmLevelClassifier(model="test-model", client=self._client('{"pl": 5}', calls))

        assert classifier.classify("Team Lead, Go") is PositionLevel.LEAD
        assert calls[0]["model"] == "test-model"
        assert calls[0]["response_format"] == {"type": "json_object"}
        assert calls[0]["messages"][-1] == {"role": "user", "content": "Team Lead, Go"}

    def test_blank_text_skips_call(self):
        calls = []
        classifier = LlmLevelClassifier(client=self._client('{"pl": 5}', calls))
        assert classifier.classify("  ") is PositionLevel.UNKNOWN
        assert calls == []

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ValueError):
            LlmLevelClassifier()


class TestOrchestrator:
    """Test bounded, retried classification runs."""

    def test_classifies_canonical_ads(self, fake_classifier):
        ads = _ads(BASE_AD_TEXT, OTHER_AD_TEXT, THIRD_AD_TEXT)
        ads[2].is_unique = False
        records = {}

        counts = _orchestrator(fake_classifier).run(ads, records)

        assert counts == {"Completed": 2}
        assert set(records) == {"ad-0", "ad-1"}
        for record in records.values():
            assert record.level is PositionLevel.SENIOR
            assert record.level_status is ProcessingStatus.COMPLETED
            assert record.classifier_version == 1
            assert record.level_attempts == 1

    def test_timeouts_fail_after_max_attempts(self, make_classifier):
        """Three timed-out attempts leave the record FAILED with three attempts."""
        classifier = make_classifier(fail_on=("QA automation",))
        ads = _ads(BASE_AD_TEXT, THIRD_AD_TEXT)
        records = {}

        counts = _orchestrator(classifier, max_attempts=3).run(ads, records)

        assert counts == {"Completed": 1, "Failed": 1}
        failed = records["ad-1"]
        assert failed.level_status is ProcessingStatus.FAILED
        assert failed.level_attempts == 3
        assert failed.level is PositionLevel.UNKNOWN
        assert sum(1 for text in classifier.calls if "QA automation" in text) == 3

    def test_rerun_retries_only_failed(self, make_classifier):
        ads = _ads(BASE_AD_TEXT, THIRD_AD_TEXT)
        records = {}
        _orchestrator(make_classifier(fail_on=("QA automation",)), max_attempts=3).run(ads, records)

        healthy = make_classifier(level=PositionLevel.JUNIOR)
        counts = _orchestrator(healthy).run(ads, records)

        assert counts == {"Completed": 1}
        assert healthy.calls == [THIRD_AD_TEXT]
        assert records["ad-1"].level is PositionLevel.JUNIOR
        assert records["ad-1"].level_attempts == 4
        assert records["ad-0"].level is PositionLevel.SENIOR

    def test_completed_not_resubmitted(self, make_classifier):
        ads = _ads(BASE_AD_TEXT)
        records = {}
        _orchestrator(make_classifier()).run(ads, records)

        again = make_classifier()
        assert _orchestrator(again).run(ads, records) == {}
        assert again.calls == []

    def test_new_classifier_version_reclassifies(self, make_classifier):
        ads = _ads(BASE_AD_TEXT)
        records = {}
        _orchestrator(make_classifier()).run(ads, records)

        newer = make_classifier(level=PositionLevel.LEAD)
        _orchestrator(newer, classifier_version=2).run(ads, records)

        assert records["ad-0"].level is PositionLevel.LEAD
        assert records["ad-0"].classifier_version == 2

    def test_interrupted_record_is_retried(self, fake_classifier):
        """A record left IN_PROGRESS by a crash is picked up again."""
        ads = _ads(BASE_AD_TEXT)
        records = {"ad-0": SalaryRecord(ad_id="ad-0", date=ads[0].date, level_status=ProcessingStatus.IN_PROGRESS)}

        counts = _orchestrator(fake_classifier).run(ads, records)

        assert counts == {"Completed": 1}
        assert records["ad-0"].level_status is ProcessingStatus.COMPLETED

    def test_stuck_call_times_out(self):
        """A call that never returns does not block the run."""
        release = threading.Event()

        class Stuck:
            def classify(self, text):
                release.wait(10)
                return PositionLevel.SENIOR

        records = {}
        try:
            counts = _orchestrator(Stuck(), timeout=0.05, max_attempts=2).run(_ads(BASE_AD_TEXT), records)
        finally:
            release.set()

        assert counts == {"Failed": 1}
        assert records["ad-0"].level_attempts == 2

    def test_cancel_leaves_rest_untouched(self):
        """After cancellation nothing new is submitted."""
        holder = {}

        class CancelOnFirst:
            def __init__(self):
                self.calls = 0

            def classify(self, text):
                self.calls += 1
                holder["orchestrator"].cancel()
                return PositionLevel.MIDDLE

        classifier = CancelOnFirst()
        orchestrator = _orchestrator(classifier, max_concurrency=1)
        holder["orchestrator"] = orchestrator
        records = {}

        counts = orchestrator.run(_ads(BASE_AD_TEXT, OTHER_AD_TEXT, THIRD_AD_TEXT), records)

        assert orchestrator.cancelled
        assert classifier.calls == 1
        assert counts == {"Completed": 1, "Skipped": 2}
        assert records["ad-0"].level_status is ProcessingStatus.COMPLETED
        assert records["ad-1"].level_status is ProcessingStatus.NOT_STARTED
        assert records["ad-2"].level_status is ProcessingStatus.NOT_STARTED

    def test_open_circuit_stops_submission(self, make_classifier):
        classifier = make_classifier(fail_on=("",), error=ConnectionError)
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        orchestrator = _orchestrator(classifier, max_concurrency=1, max_attempts=1, circuit_breaker=breaker)
        records = {}

        counts = orchestrator.run(_ads(BASE_AD_TEXT, OTHER_AD_TEXT), records)

        assert counts == {"Failed": 1, "Skipped": 1}
        assert breaker.is_open
        assert records["ad-1"].level_status is ProcessingStatus.NOT_STARTED

    def test_invalid_arguments(self, fake_classifier):
        with pytest.raises(ValueError):
            _orchestrator(fake_classifier, max_concurrency=0)
        with pytest.raises(ValueError):
            _orchestrator(fake_classifier, max_attempts=0)
