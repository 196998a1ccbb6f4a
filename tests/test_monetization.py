"""Tests for monetization products, modules and versions."""

import pytest

from fixtures.llm_responses import MODULE_MARKDOWN
from nexora.chains.monetization import (
    MODULE_INSTRUCTIONS,
    SYSTEM_PROMPT,
    build_module_prompt,
)
from nexora.models import MODULE_TYPES, NotFoundError, UpstreamGenerationError, ValidationError
from nexora.monetization import MonetizationService


@pytest.fixture
def service(records, llm):
    return MonetizationService(records, llm, model="test/monetization")


@pytest.fixture
def module(service):
    product = service.create_product("user-1", "The Focus Blueprint", "deep work", "A focus guide")
    return service.create_module("user-1", product["id"], "course", "Focus Course")


def test_every_module_type_has_instructions():
    assert {info.value for info in MODULE_TYPES} == set(MODULE_INSTRUCTIONS)


def test_module_prompt_truncates_source_content():
    prompt = build_module_prompt("lead_magnet", "T", "topic", None, "s" * 20000)

    assert prompt.startswith(MODULE_INSTRUCTIONS["lead_magnet"])
    assert 'Description: "N/A"' in prompt
    assert "s" * 12000 in prompt
    assert "s" * 12001 not in prompt


def test_unknown_module_type_uses_course_prompt():
    assert build_module_prompt("mystery", "T", "t").startswith(MODULE_INSTRUCTIONS["course"])


def test_create_module_starts_as_draft(module):
    assert module["status"] == "draft"
    assert module["module_type"] == "course"


def test_create_module_requires_owned_product(service):
    product = service.create_product("owner", "Title", "topic")

    with pytest.raises(NotFoundError, match="Product not found"):
        service.create_module("intruder", product["id"], "course", "Stolen")


def test_create_module_rejects_unknown_type(service):
    product = service.create_product("user-1", "Title", "topic")

    with pytest.raises(ValidationError):
        service.create_module("user-1", product["id"], "podcast", "Nope")


def test_generate_module_appends_versions(service, module, chat_factory):
    """Each generation appends version n+1 and leaves earlier versions intact."""
    first = service.generate_module("user-1", module["id"], source_content="chapter text")
    second = service.generate_module("user-1", module["id"])
    third = service.generate_module("user-1", module["id"])

    assert [v["version"]["version_number"] for v in (first, second, third)] == [1, 2, 3]

    detail = service.get_module("user-1", module["id"])
    assert detail["module"]["status"] == "generated"
    assert [v["version_number"] for v in detail["versions"]] == [3, 2, 1]
    assert detail["versions"][2]["id"] == first["version"]["id"]
    assert detail["versions"][2]["markdown"] == MODULE_MARKDOWN.strip()
    assert detail["versions"][0]["model_used"] == "test/monetization"

    call = chat_factory.calls[0]
    assert call["messages"][0].content == SYSTEM_PROMPT
    assert 'Title: "The Focus Blueprint"' in call["prompt"]
    assert "chapter text" in call["prompt"]


def test_prompt_used_is_truncated(service, module):
    result = service.generate_module("user-1", module["id"], source_content="z" * 5000)
    assert len(result["version"]["prompt_used"]) == 2000


def test_short_content_is_rejected(service, module, chat_factory):
    chat_factory.reply = lambda prompt: "too short"

    with pytest.raises(UpstreamGenerationError, match="too short"):
        service.generate_module("user-1", module["id"])

    detail = service.get_module("user-1", module["id"])
    assert detail["versions"] == []
    assert detail["module"]["status"] == "draft"


def test_modules_are_private(service, module):
    with pytest.raises(NotFoundError):
        service.get_module("intruder", module["id"])
    with pytest.raises(NotFoundError):
        service.generate_module("intruder", module["id"])


def test_list_products_includes_modules(service, module):
    other = service.create_product("user-2", "Other", "topic")
    products = service.list_products("user-1")

    assert len(products) == 1
    assert products[0]["monetization_modules"][0]["id"] == module["id"]
    assert products[0]["source_type"] == "ebook"
    assert service.list_products("user-2")[0]["id"] == other["id"]


def test_list_modules(service, module):
    modules = service.list_modules("user-1", module["product_id"])
    assert [m["id"] for m in modules] == [module["id"]]


def test_metric_and_feedback_recorded(service, module, records):
    service.record_metric("user-1", module["id"], "download", {"format": "pdf"})
    service.submit_feedback("user-1", module["id"], rating=4, comment="useful", section="Module 1")

    metric = records.select("monetization_metrics")[0]
    assert metric["event_type"] == "download"
    assert metric["metadata"] == {"format": "pdf"}
    feedback = records.select("monetization_feedback")[0]
    assert feedback["rating"] == 4
    assert feedback["user_id"] == "user-1"


def test_feedback_rating_must_be_in_range(service, module):
    with pytest.raises(ValidationError):
        service.submit_feedback("user-1", module["id"], rating=9)
