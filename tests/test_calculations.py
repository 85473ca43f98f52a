"""Tests for BMR/TDEE and daily calorie arithmetic."""

from app.core.calculations import (
    calculate_bmr,
    calculate_tdee,
    net_calories,
    summarize_calories,
    with_energy_estimates,
)
from app.core.schemas_conversation import ExerciseLogEntry, FoodLogEntry, UserProfile


def _profile(**overrides):
    fields = {"age": 30, "gender": "male", "height": 175, "weight": 70, "activity_level": "sedentary"}
    fields.update(overrides)
    return UserProfile(**fields)


class TestBmr:
    def test_male(self):
        # 700 + 1093.75 - 150 + 5
        assert calculate_bmr(_profile()) == 1649

    def test_female(self):
        # 600 + 1031.25 - 125 - 161
        assert calculate_bmr(_profile(gender="Female", weight=60, height=165, age=25)) == 1345

    def test_unspecified_gender_uses_averaged_offset(self):
        # 700 + 1093.75 - 150 - 78
        assert calculate_bmr(_profile(gender="non-binary")) == 1566

    def test_missing_field_returns_none(self):
        assert calculate_bmr(_profile(weight=None)) is None
        assert calculate_bmr(_profile(gender=None)) is None


class TestTdee:
    def test_activity_multiplier(self):
        assert calculate_tdee(1649, "moderately_active") == 2556

    def test_unknown_or_missing_level_defaults_to_sedentary(self):
        assert calculate_tdee(1000, "couch_athlete") == 1200
        assert calculate_tdee(1000, None) == 1200

    def test_none_bmr(self):
        assert calculate_tdee(None, "very_active") is None

    def test_with_energy_estimates_recomputes_stale_values(self):
        profile = with_energy_estimates(_profile(bmr=1, tdee=2, activity_level="extra_active"))
        assert profile.bmr == 1649
        assert profile.tdee == round(1649 * 1.9)


class TestNetCalories:
    def test_net_formula(self):
        assert net_calories(2300, 2200, 400) == 500

    def test_undefined_without_tdee(self):
        assert net_calories(None, 2200, 400) is None

    def test_summarize_calories(self):
        food = [
            FoodLogEntry(name="Oatmeal", calories=700, meal_type="breakfast"),
            FoodLogEntry(name="Pasta", calories=1500, meal_type="dinner"),
        ]
        exercise = [ExerciseLogEntry(name="Run", type="cardio", duration=40, calories_burned=400)]

        summary = summarize_calories(food, exercise, 2300)

        assert summary.consumed == 2200
        assert summary.burned == 400
        assert summary.net == 500
        assert summary.as_derived_data()["remaining_calories"] == 500

    def test_summarize_without_tdee(self):
        summary = summarize_calories([FoodLogEntry(name="Apple", calories=95)], [], None)
        assert summary.consumed == 95
        assert summary.tdee is None
        assert summary.net is None
