from shop_contracts.schemas import UserContext
from shop_agent.policy import PROHIBITED, check_policy


def test_clean_message_is_allowed():
    verdict = check_policy("find a frying pan")
    assert verdict.verdict == "ALLOW"
    assert not verdict.blocked


def test_card_number_is_blocked():
    verdict = check_policy("my card is 1234-5678-9012-3456")
    assert verdict.verdict == "BLOCK"
    assert verdict.violated_policies == ["PII_PROTECTION"]
    assert verdict.alternative_guidance


def test_korean_pii_keyword_is_blocked():
    assert check_policy("주민등록번호 알려줄게").violated_policies == ["PII_PROTECTION"]


def test_pii_outranks_manipulation():
    verdict = check_policy("today only! my password is hunter2")
    assert verdict.verdict == "BLOCK"
    assert verdict.violated_policies == ["PII_PROTECTION"]


def test_manipulative_language_warns():
    verdict = check_policy("buy it now or you'll regret it")
    assert verdict.verdict == "WARN"
    assert verdict.violated_policies == ["FORCED_PURCHASE"]


def test_excessive_quantity_warns():
    tool = {"tool": "addToCart", "payload": {"productId": "prod_1", "quantity": 200}}
    verdict = check_policy("add these to my cart", [tool])
    assert verdict.verdict == "WARN"
    assert verdict.violated_policies == ["EXCESSIVE_QUANTITY"]
    assert "support" in verdict.alternative_guidance


def test_excessive_checkout_item_quantity_warns():
    tool = {"tool": "goToCheckout", "payload": {"items": [{"productId": "prod_1", "quantity": 150}]}}
    assert check_policy("checkout", [tool]).violated_policies == ["EXCESSIVE_QUANTITY"]


def test_quantity_of_one_hundred_is_fine():
    tool = {"tool": "addToCart", "payload": {"productId": "prod_1", "quantity": 100}}
    assert check_policy("add to cart", [tool]).verdict == "ALLOW"


def test_age_restricted_requires_verification():
    verdict = check_policy("I want to buy cigarettes")
    assert verdict.verdict == "BLOCK"
    assert verdict.violated_policies == ["MINOR_PROTECTION", "AGE_RESTRICTION"]

    verified = UserContext(age_verified=True)
    assert check_policy("I want to buy cigarettes", user_context=verified).verdict == "ALLOW"


def test_classifier_is_pluggable():
    class Flagger:
        def classify(self, text):
            return frozenset({PROHIBITED})

    verdict = check_policy("anything", classifier=Flagger())
    assert verdict.violated_policies == ["PROHIBITED_GOODS"]


def test_wire_shape():
    wire = check_policy("buy it now or you'll regret it").to_wire()
    assert wire["verdict"] == "WARN"
    assert wire["violatedPolicies"] == ["FORCED_PURCHASE"]
    assert "alternativeGuidance" in wire
