"""
tests/test_observation_engine.py — Tests for observation collection,
aggregation and grouping.
"""

import pytest

from models import (
    AggregatedField, ObservationCycle, ObservationRecord, PlantRecord, TraitArea,
    TraitDefinition, TraitGroup,
)
from observation_engine import (
    BASE_VALUE_DATE,
    BASE_VALUE_NOTE,
    OTHER_AREA_NAME,
    aggregate_all,
    aggregate_field,
    build_plant_observations,
    collect_observations,
    format_display_value,
    get_field_detail,
    get_mean_value,
    get_mode_value,
    get_summary_value,
    group_by_area,
    sort_observations_by_date,
    to_number,
)


def obs(field, value, date, notes=None):
    return ObservationRecord(field=field, value=value, observation_date=date, notes=notes)


@pytest.fixture
def schema():
    return [
        TraitArea(name='Architecture', groups=[
            TraitGroup(name='Scape', traits=[
                TraitDefinition(field='scape_height', label='Scape Height (inches)', type='number'),
                TraitDefinition(field='bud_count', label='Bud Count', type='number'),
            ]),
        ]),
        TraitArea(name='Flowers', groups=[
            TraitGroup(name='Form', traits=[
                TraitDefinition(field='substance', label='Substance', type='select'),
            ]),
        ]),
        TraitArea(name='Empty', groups=[
            TraitGroup(name='Nothing', traits=[
                TraitDefinition(field='never_seen', label='Never Seen'),
            ]),
        ]),
    ]


@pytest.fixture
def plant():
    return PlantRecord(
        id=1,
        name='Test Daylily',
        acquisition_date='2024-03-15',
        static_values={'scape_height': 40, 'ploidy': 'Diploid', 'fragrance': None},
        observation_cycles=[
            ObservationCycle(
                cycle_name='Summer Bloom',
                start_date='2024-07-01',
                observations={'scape_height': 38, 'substance': 'Good'},
            ),
        ],
        individual_observations=[
            obs('scape_height', 41, '2024-07-12'),
            obs('mystery_trait', 'odd', '2024-07-20'),
        ],
    )


# ========================================
# Statistics Helpers
# ========================================

class TestStatistics:

    def test_mean_rounds_to_one_decimal(self):
        assert get_mean_value([8, 8, 9]) == 8.3
        assert get_mean_value([1, 2]) == 1.5
        assert get_mean_value([]) == 0

    def test_mean_rounds_half_up(self):
        assert get_mean_value([0.25, 0.25]) == 0.3

    def test_mode_tie_goes_to_first_seen(self):
        assert get_mode_value(['Poor', 'Good', 'Good', 'Poor']) == 'Poor'
        assert get_mode_value(['Good', 'Excellent', 'Good']) == 'Good'
        assert get_mode_value([]) is None

    def test_mode_counts_by_string_form(self):
        assert get_mode_value(['x', 8, '8']) == 8

    @pytest.mark.parametrize('value, expected', [
        (8, 8),
        (2.5, 2.5),
        ('12', 12.0),
        (' 3.5 ', 3.5),
        ('abc', None),
        ('', None),
        (True, None),
        (float('nan'), None),
        ('inf', None),
        (None, None),
        (10 ** 400, None),
    ])
    def test_to_number(self, value, expected):
        assert to_number(value) == expected


# ========================================
# Date Ordering
# ========================================

class TestDateOrdering:

    def test_newest_first(self):
        records = [obs('a', 1, '2023-01-01'), obs('a', 2, '2024-06-01'), obs('a', 3, '2023-12-31')]
        assert [r.value for r in sort_observations_by_date(records)] == [2, 3, 1]

    def test_equal_dates_keep_input_order(self):
        records = [obs('a', 1, '2024-07-01'), obs('a', 2, '2024-07-01'), obs('a', 3, '2024-07-01')]
        assert [r.value for r in sort_observations_by_date(records)] == [1, 2, 3]

    def test_mixed_date_and_datetime(self):
        records = [obs('a', 1, '2024-07-01'), obs('a', 2, '2024-07-01T09:30:00Z')]
        assert [r.value for r in sort_observations_by_date(records)] == [2, 1]

    def test_unparseable_dates_sort_last(self):
        records = [obs('a', 1, 'someday'), obs('a', 2, '2020-01-01')]
        assert [r.value for r in sort_observations_by_date(records)] == [2, 1]


# ========================================
# Collection
# ========================================

class TestCollection:

    def test_sources_in_precedence_order(self, plant):
        collected = collect_observations(plant)
        heights = collected['scape_height']
        assert [r.value for r in heights] == [41, 38]
        assert heights[1].notes == 'From Summer Bloom'
        assert heights[1].observation_date == '2024-07-01'
        assert heights[1].exclude_from_automatic_cycle is False

    def test_static_values_only_fill_unobserved_fields(self, plant):
        collected = collect_observations(plant)
        assert all(r.notes != BASE_VALUE_NOTE for r in collected['scape_height'])

        ploidy = collected['ploidy']
        assert len(ploidy) == 1
        assert ploidy[0].value == 'Diploid'
        assert ploidy[0].notes == BASE_VALUE_NOTE
        assert ploidy[0].observation_date == '2024-03-15'
        assert ploidy[0].exclude_from_automatic_cycle is True

    def test_null_static_values_skipped(self, plant):
        assert 'fragrance' not in collect_observations(plant)

    def test_base_date_without_acquisition_date(self):
        plant = PlantRecord(static_values={'ploidy': 'Tetraploid'})
        assert collect_observations(plant)['ploidy'][0].observation_date == BASE_VALUE_DATE

    def test_fields_in_first_seen_order(self, plant):
        assert list(collect_observations(plant)) == ['scape_height', 'mystery_trait', 'substance', 'ploidy']

    def test_plant_not_modified(self, plant):
        collect_observations(plant)
        assert len(plant.individual_observations) == 2
        assert plant.observation_cycles[0].observations == {'scape_height': 38, 'substance': 'Good'}

    def test_empty_plant(self):
        assert collect_observations(PlantRecord()) == {}


# ========================================
# Aggregation
# ========================================

class TestAggregation:

    def test_numeric_mean_with_range(self):
        records = [obs('scape_height', 8, '2024-01-01'), obs('scape_height', 8, '2024-02-01'),
                   obs('scape_height', 9, '2024-03-01')]
        result = aggregate_field('scape_height', records)
        assert result.value_type == 'mean'
        assert result.current_value == 8.3
        assert result.range == {'min': 8, 'max': 9}
        assert result.has_conflicts is True
        assert [r.value for r in result.observations] == [9, 8, 8]

    def test_numeric_strings_are_averaged(self):
        records = [obs('bud_count', '10', '2024-01-01'), obs('bud_count', 12, '2024-02-01')]
        result = aggregate_field('bud_count', records)
        assert result.value_type == 'mean'
        assert result.current_value == 11.0

    def test_mode_with_distribution(self):
        records = [obs('substance', 'Good', '2024-01-01'), obs('substance', 'Excellent', '2024-02-01'),
                   obs('substance', 'Good', '2024-03-01')]
        result = aggregate_field('substance', records)
        assert result.value_type == 'mode'
        assert result.current_value == 'Good'
        assert result.value_count == {'Good': 2, 'Excellent': 1}
        assert result.range is None
        assert result.has_conflicts is True

    def test_mode_tie_uses_input_order_not_date_order(self):
        records = [obs('substance', 'Poor', '2020-01-01'), obs('substance', 'Good', '2024-01-01')]
        assert aggregate_field('substance', records).current_value == 'Poor'

    def test_single_value(self):
        result = aggregate_field('substance', [obs('substance', None, '2024-01-01'),
                                               obs('substance', 'Good', '2023-01-01')])
        assert result.value_type == 'single'
        assert result.current_value == 'Good'
        assert result.has_conflicts is False
        assert len(result.observations) == 2

    def test_identical_booleans_are_not_conflicts(self):
        records = [obs('rebloom', True, d) for d in ('2022-01-01', '2023-01-01', '2024-01-01')]
        result = aggregate_field('rebloom', records)
        assert result.value_type == 'mode'
        assert result.current_value is True
        assert result.has_conflicts is False

    def test_identical_text_true_is_not_a_conflict(self):
        records = [obs('rebloom', 'True', d) for d in ('2022-01-01', '2023-01-01', '2024-01-01')]
        result = aggregate_field('rebloom', records)
        assert result.value_type == 'mode'
        assert result.current_value == 'True'
        assert result.value_count == {'True': 3}
        assert result.has_conflicts is False

    def test_integral_float_equals_int(self):
        result = aggregate_field('bud_count', [obs('bud_count', 8, '2024-01-01'),
                                               obs('bud_count', 8.0, '2024-02-01')])
        assert result.value_type == 'mean'
        assert result.current_value == 8.0
        assert result.has_conflicts is False

    def test_integral_floats_counted_together_in_mode(self):
        values = [8, 'many', 8.0]
        result = aggregate_field('bud_count', [obs('bud_count', v, '2024-01-01') for v in values])
        assert result.value_type == 'mode'
        assert result.current_value == 8
        assert result.value_count == {'8': 2, 'many': 1}

    def test_huge_integers_do_not_break_aggregation(self):
        huge = 10 ** 400
        result = aggregate_field('bud_count', [obs('bud_count', huge, '2024-01-01'),
                                               obs('bud_count', 5, '2024-02-01')])
        assert result.value_type == 'mode'
        assert result.current_value == huge
        assert result.has_conflicts is True

    def test_all_null_values(self):
        result = aggregate_field('substance', [obs('substance', None, '2024-01-01')])
        assert result.value_type == 'latest'
        assert result.current_value is None
        assert result.has_conflicts is False
        assert len(result.observations) == 1

    def test_aggregated_field_defaults(self):
        first = AggregatedField()
        second = AggregatedField()
        assert first.field == ''
        assert first.value_type == 'latest'
        assert first.observations == []
        assert first.observations is not second.observations

    def test_no_records(self):
        result = aggregate_field('substance', [])
        assert result.current_value is None
        assert result.observations == []

    def test_mixed_numeric_and_text_uses_mode(self):
        result = aggregate_field('bud_count', [obs('bud_count', 8, '2024-01-01'),
                                               obs('bud_count', 'many', '2024-02-01')])
        assert result.value_type == 'mode'
        assert result.current_value == 8

    def test_deterministic(self, plant):
        assert aggregate_all(collect_observations(plant)) == aggregate_all(collect_observations(plant))


# ========================================
# Grouping
# ========================================

class TestGrouping:

    def test_every_field_appears_exactly_once(self, plant, schema):
        aggregated = aggregate_all(collect_observations(plant))
        grouped = group_by_area(aggregated, schema)
        fields = [t.field for area in grouped for t in area.traits]
        assert sorted(fields) == sorted(aggregated)
        assert len(fields) == len(set(fields))

    def test_schema_order_and_labels(self, plant, schema):
        grouped = build_plant_observations(plant, schema)
        assert [g.area for g in grouped] == ['Architecture', 'Flowers', OTHER_AREA_NAME]
        assert grouped[0].traits[0].label == 'Scape Height (inches)'
        assert grouped[0].observed_count == 1

    def test_unknown_fields_go_to_other(self, plant, schema):
        other = build_plant_observations(plant, schema)[-1]
        assert other.area == OTHER_AREA_NAME
        assert [t.field for t in other.traits] == ['mystery_trait', 'ploidy']
        assert [t.label for t in other.traits] == ['Mystery Trait', 'Ploidy']

    def test_no_other_area_when_all_known(self, schema):
        aggregated = aggregate_all({'substance': [obs('substance', 'Good', '2024-01-01')]})
        grouped = group_by_area(aggregated, schema)
        assert [g.area for g in grouped] == ['Flowers']

    def test_inputs_not_modified(self, plant, schema):
        aggregated = aggregate_all(collect_observations(plant))
        group_by_area(aggregated, schema)
        assert all(entry.label is None for entry in aggregated.values())

    def test_duplicate_schema_field_assigned_once(self):
        schema = [
            TraitArea(name='A', groups=[TraitGroup(name='G', traits=[TraitDefinition(field='dup', label='In A')])]),
            TraitArea(name='B', groups=[TraitGroup(name='G', traits=[TraitDefinition(field='dup', label='In B')])]),
        ]
        grouped = group_by_area(aggregate_all({'dup': [obs('dup', 1, '2024-01-01')]}), schema)
        assert [g.area for g in grouped] == ['A']
        assert grouped[0].traits[0].label == 'In A'


# ========================================
# Detail and Display
# ========================================

class TestDetailAndDisplay:

    def test_field_detail(self, plant):
        detail = get_field_detail(plant, 'scape_height', label='Scape Height')
        assert detail.value_type == 'mean'
        assert detail.current_value == 39.5
        assert detail.label == 'Scape Height'
        assert get_field_detail(plant, 'never_seen') is None

    def test_summary_prefers_registered_value(self, plant):
        assert get_summary_value(plant, 'scape_height') == 40
        assert get_summary_value(plant, 'substance') == 'Good'
        assert get_summary_value(plant, 'fragrance') is None

    @pytest.mark.parametrize('value, field_name, expected', [
        (None, 'substance', '—'),
        (True, 'rebloom', 'Yes'),
        (False, 'rebloom', 'No'),
        (40, 'scape_height', '40"'),
        (8.3, 'flower_size', '8.3"'),
        (18, 'bud_count', '18'),
        (11.0, 'bud_count', '11'),
        ('Good', 'substance', 'Good'),
    ])
    def test_format_display_value(self, value, field_name, expected):
        assert format_display_value(value, field_name) == expected
