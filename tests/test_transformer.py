import pytest

from tablemigrate.errors import ConfigurationError
from tablemigrate.models.record import (
    ABSENT,
    ListValue,
    MonetaryAmount,
    PersonReference,
    Scalar,
    StructuredReference,
)
from tablemigrate.models.schema import TransformDirective
from tablemigrate.services.transformer import TransformRegistry


@pytest.fixture()
def registry():
    return TransformRegistry()


def test_identity_returns_value_unchanged(registry):
    transform = registry.resolve(TransformDirective.identity())
    value = StructuredReference(name="Acme")
    assert transform(value) is value


def test_coerce_to_text(registry):
    assert registry.coerce(Scalar(12), "text") == Scalar("12")
    assert registry.coerce(Scalar(True), "text") == Scalar("true")
    assert registry.coerce(MonetaryAmount(9.5, "USD"), "text") == Scalar("9.5")


def test_coerce_to_number(registry):
    assert registry.coerce(Scalar("$1,234.50"), "number") == Scalar(1234.5)
    assert registry.coerce(Scalar("7"), "number") == Scalar(7)
    assert registry.coerce(MonetaryAmount(42.5, "USD"), "number") == Scalar(42.5)
    # Currency columns keep the monetary value
    assert registry.coerce(MonetaryAmount(42.5, "USD"), "currency") == MonetaryAmount(42.5, "USD")


def test_coerce_is_lenient(registry):
    assert registry.coerce(Scalar("not a number"), "number") == Scalar("not a number")
    assert registry.coerce(Scalar("someday"), "date") == Scalar("someday")
    assert registry.coerce(Scalar("maybe"), "checkbox") == Scalar("maybe")
    assert registry.coerce(ABSENT, "number") is ABSENT


def test_coerce_dates(registry):
    assert registry.coerce(Scalar("March 5, 2024"), "date") == Scalar("2024-03-05")
    assert registry.coerce(Scalar("2024-03-05 14:30"), "dateTime") == Scalar("2024-03-05T14:30:00")


def test_coerce_checkbox(registry):
    assert registry.coerce(Scalar("Yes"), "checkbox") == Scalar(True)
    assert registry.coerce(Scalar("no"), "checkbox") == Scalar(False)
    assert registry.coerce(Scalar(0), "checkbox") == Scalar(False)


def test_coerce_applies_to_list_items(registry):
    value = ListValue([Scalar("1"), Scalar("2.5")])
    assert registry.coerce(value, "number") == ListValue([Scalar(1), Scalar(2.5)])


def test_type_coerce_directive(registry):
    transform = registry.resolve(TransformDirective.type_coerce("number"))
    assert transform(Scalar("3")) == Scalar(3)


def test_select_to_lookup_uses_reference_name(registry):
    transform = registry.resolve(TransformDirective.named("select_to_lookup", {"from": "select", "to": "lookup"}))
    assert transform(StructuredReference(name="Card")) == Scalar("Card")
    assert transform(Scalar("Cash")) == Scalar("Cash")
    assert transform(ListValue([StructuredReference(name="A"), StructuredReference(name="B")])) == ListValue(
        [Scalar("A"), Scalar("B")]
    )


def test_person_to_text(registry):
    transform = registry.resolve(TransformDirective.named("person_to_text"))
    assert transform(PersonReference("Jo", "jo@x.com")) == Scalar("jo@x.com")


def test_enum_map_and_default(registry):
    enum_map = registry.resolve(TransformDirective.named("enum_map", {"mapping": {"Eng": "Engineering"}}))
    assert enum_map(Scalar("Eng")) == Scalar("Engineering")
    assert enum_map(Scalar("Ops")) == Scalar("Ops")

    default = registry.resolve(TransformDirective.named("default", {"value": "Unknown"}))
    assert default(ABSENT) == Scalar("Unknown")
    assert default(Scalar("Known")) == Scalar("Known")


def test_numeric_and_text_transforms(registry):
    multiply = registry.resolve(TransformDirective.named("multiply", {"multiplier": 100}))
    assert multiply(Scalar("0.25")) == Scalar(25.0)

    divide = registry.resolve(TransformDirective.named("divide", {"divisor": 0}))
    assert divide(Scalar(5)) == Scalar(5)

    truncate = registry.resolve(TransformDirective.named("truncate", {"max_length": 3}))
    assert truncate(Scalar("abcdef")) == Scalar("abc")

    strip = registry.resolve(TransformDirective.named("prefix_strip", {"prefix": "cus_", "new_prefix": "c-"}))
    assert strip(Scalar("cus_42")) == Scalar("c-42")

    phone = registry.resolve(TransformDirective.named("clean_phone"))
    assert phone(Scalar("(415) 555-0100")) == Scalar("4155550100")


def test_boolean_to_enum(registry):
    transform = registry.resolve(TransformDirective.named("boolean_to_enum", {"true_value": "Paid", "false_value": "Open"}))
    assert transform(Scalar(True)) == Scalar("Paid")
    assert transform(Scalar("no")) == Scalar("Open")


def test_custom_transform(registry):
    registry.register_transform("reverse", lambda value, options: Scalar(value.value[::-1]))
    assert registry.has_transform("reverse")
    assert registry.resolve(TransformDirective.named("reverse"))(Scalar("abc")) == Scalar("cba")


def test_unknown_pair_falls_back_to_coercion(registry):
    transform = registry.resolve(TransformDirective.named("text_to_number", {"from": "text", "to": "number"}))
    assert transform(Scalar("12")) == Scalar(12)


def test_unknown_transform_raises(registry):
    with pytest.raises(ConfigurationError):
        registry.resolve(TransformDirective.named("does_not_exist"))
