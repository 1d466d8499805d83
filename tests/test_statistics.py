from datetime import date
import pytest
from medpractice.reporting.statistics import (
    AGE_BUCKETS, DETAILED_AGE_BUCKETS, age_bucket, age_distribution, calculate_trend,
    detailed_age_bucket, format_rate, rate_value, ratio
)


@pytest.mark.parametrize('recent, older, expected', [
    (0, 0, 'stable'),
    (3, 0, 'increasing'),
    (120, 100, 'increasing'),       # exactly +20%
    (121, 100, 'increasing_fast'),
    (105, 100, 'stable'),           # exactly +5%
    (106, 100, 'increasing'),
    (80, 100, 'decreasing'),        # exactly -20%
    (79, 100, 'decreasing_fast'),
    (95, 100, 'stable'),            # exactly -5%
    (94, 100, 'decreasing'),
    (100, 100, 'stable'),
])
def test_calculate_trend_boundaries(recent, older, expected):
    assert calculate_trend(recent, older) == expected


@pytest.mark.parametrize('birth_year, expected', [
    (2024, '0-18'),
    (2006, '0-18'),
    (2005, '19-35'),
    (1989, '19-35'),
    (1988, '36-50'),
    (1974, '36-50'),
    (1973, '51-65'),
    (1959, '51-65'),
    (1958, '65+'),
    (1920, '65+'),
])
def test_age_bucket_uses_calendar_year_difference(birth_year, expected):
    # Month and day do not matter: Dec 31 and Jan 1 of the same year share a bucket
    assert age_bucket(date(birth_year, 1, 1), 2024) == expected
    assert age_bucket(date(birth_year, 12, 31), 2024) == expected


@pytest.mark.parametrize('age, expected', [
    (0, '0-10'), (10, '0-10'), (11, '11-20'), (20, '11-20'), (21, '21-30'),
    (70, '61-70'), (71, '71-80'), (80, '71-80'), (81, '80+'), (99, '80+'),
])
def test_detailed_age_bucket(age, expected):
    assert detailed_age_bucket(date(2024 - age, 6, 1), 2024) == expected


def test_age_distribution_counts_every_known_birth_date_once():
    birth_dates = [date(1990, 1, 1), date(2015, 5, 5), None, date(1950, 3, 3), date(1960, 7, 7)]
    distribution = age_distribution(birth_dates, 2024)

    assert list(distribution) == list(AGE_BUCKETS)
    assert sum(distribution.values()) == 4
    assert distribution == {'0-18': 1, '19-35': 1, '36-50': 0, '51-65': 1, '65+': 1}


def test_detailed_age_distribution_has_nine_buckets():
    distribution = age_distribution([date(1940, 1, 1)], 2024, detailed=True)
    assert list(distribution) == list(DETAILED_AGE_BUCKETS)
    assert distribution['80+'] == 1


def test_rates_and_ratios():
    assert format_rate(1, 3) == '33.33%'
    assert format_rate(5, 0) == '0%'
    assert rate_value('79.99%') == pytest.approx(79.99)
    assert rate_value('0%') == 0
    assert ratio(10, 4) == 2.5
    assert ratio(3, 0) == 0
