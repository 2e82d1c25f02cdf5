from itertools import product

from selectorguard.models import FeatureVector
from selectorguard.scoring import recommend, score, score_breakdown, suggestions


def _features(
    *,
    stable_id: bool = False,
    aria: bool = False,
    text: bool = False,
    data: bool = False,
    depth: int = 0,
    variance: float = 0.0,
    unique: bool = True,
) -> FeatureVector:
    return FeatureVector(
        has_stable_id_attribute=stable_id,
        has_aria_label=aria,
        has_visible_text=text,
        has_data_attribute=data,
        dom_depth=depth,
        sibling_position_variance=variance,
        is_unique_match=unique,
    )


def _grid(unique_values: tuple[bool, ...] = (True, False)) -> list[FeatureVector]:
    return [
        _features(stable_id=s, aria=a, text=t, data=d, depth=depth, variance=v, unique=u)
        for s, a, t, d, depth, v, u in product(
            (True, False),
            (True, False),
            (True, False),
            (True, False),
            (0, 3, 10, 40),
            (0.0, 4.5, 20.0, 250.0),
            unique_values,
        )
    ]


def test_non_unique_selectors_are_always_avoided() -> None:
    for features in _grid(unique_values=(False,)):
        value, recommendation = score(features)
        assert value < 50
        assert recommendation == "avoid"


def test_scores_are_clipped_to_range() -> None:
    for features in _grid():
        value, _ = score(features)
        assert 0 <= value <= 100
        assert isinstance(value, int)


def test_depth_never_increases_score() -> None:
    for features in _grid():
        previous = None
        for depth in range(0, 25):
            value, _ = score(_features(
                stable_id=features.has_stable_id_attribute,
                aria=features.has_aria_label,
                text=features.has_visible_text,
                data=features.has_data_attribute,
                depth=depth,
                variance=features.sibling_position_variance,
                unique=features.is_unique_match,
            ))
            if previous is not None:
                assert value <= previous
            previous = value


def test_data_attribute_is_not_double_counted_with_stable_id() -> None:
    both = score_breakdown(_features(stable_id=True, data=True))
    assert both.id_bonus == 35.0
    assert both.data_attr_bonus == 0.0

    data_only = score_breakdown(_features(data=True, depth=10, variance=20.0))
    assert data_only.data_attr_bonus == 25.0
    assert data_only.total == 90


def test_penalties_are_capped() -> None:
    breakdown = score_breakdown(_features(depth=50, variance=999.0))
    assert breakdown.depth_penalty == 15.0
    assert breakdown.variance_penalty == 20.0
    assert breakdown.total == 65


def test_bare_unique_selector_scores_from_depth() -> None:
    assert score(_features(depth=4)) == (94, "preferred")


def test_zero_match_is_avoided_regardless_of_features() -> None:
    value, recommendation = score(_features(stable_id=True, aria=True, text=True, data=True, unique=False))
    assert value <= 20
    assert recommendation == "avoid"


def test_recommendation_boundaries_are_inclusive_on_higher_tier() -> None:
    assert recommend(100) == "preferred"
    assert recommend(80) == "preferred"
    assert recommend(79) == "acceptable"
    assert recommend(50) == "acceptable"
    assert recommend(49) == "avoid"
    assert recommend(0) == "avoid"


def test_half_points_round_up() -> None:
    assert score_breakdown(_features(depth=3, variance=16.0)).total == 80
    assert score_breakdown(_features(depth=1, variance=18.0)).total == 81
    assert score(_features(depth=3, variance=16.0)) == (80, "preferred")


def test_suggestions_follow_weak_score_terms() -> None:
    strong = score_breakdown(_features(stable_id=True, aria=True, text=True, depth=3))
    assert suggestions(strong, match_count=1) == []

    weak = score_breakdown(_features(depth=8, variance=2.0, unique=False))
    assert suggestions(weak, match_count=3) == [
        "Add more specific attributes to make selector unique",
        "Use data attributes or IDs for better resilience",
        "Target a closer stable ancestor; the element is deeply nested",
        "Element position changes between page versions; avoid position-based selectors",
        "Add an aria-label or visible text to anchor the element semantically",
    ]

    missing = score_breakdown(_features(unique=False))
    assert suggestions(missing, match_count=0) == [
        "Check selector syntax and ensure elements exist",
        "Use data attributes or IDs for better resilience",
    ]
