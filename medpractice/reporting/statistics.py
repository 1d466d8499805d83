"""
Aggregate helpers shared by the analysis, report and self-test pipelines.

Everything returned from here is plain JSON data (str keys, int/float/str
values) so a report written with ``json.dump`` loads back unchanged.
"""
import gc
import resource
import time
from datetime import date, datetime, timedelta
from sqlalchemy import func
from medpractice.extensions import db

AGE_BUCKETS = ('0-18', '19-35', '36-50', '51-65', '65+')
DETAILED_AGE_BUCKETS = ('0-10', '11-20', '21-30', '31-40', '41-50', '51-60', '61-70', '71-80', '80+')
UNKNOWN = 'unknown'
_PROCESS_STARTED = time.monotonic()


def calculate_trend(recent, older):
    """Classifies the change between two window counts into a trend label."""
    if older == 0:
        return 'increasing' if recent > 0 else 'stable'

    percentage = (recent - older) / older * 100

    if percentage > 20:
        return 'increasing_fast'
    if percentage > 5:
        return 'increasing'
    if percentage < -20:
        return 'decreasing_fast'
    if percentage < -5:
        return 'decreasing'
    return 'stable'


def _year_age(birth_date, current_year):
    # Calendar-year difference only; month and day are ignored.
    return current_year - birth_date.year


def age_bucket(birth_date, current_year=None):
    age = _year_age(birth_date, current_year or date.today().year)
    if age <= 18:
        return '0-18'
    if age <= 35:
        return '19-35'
    if age <= 50:
        return '36-50'
    if age <= 65:
        return '51-65'
    return '65+'


def detailed_age_bucket(birth_date, current_year=None):
    age = _year_age(birth_date, current_year or date.today().year)
    if age <= 10:
        return '0-10'
    if age > 80:
        return '80+'
    lower = ((age - 1) // 10) * 10 + 1
    return f'{lower}-{lower + 9}'


def age_distribution(birth_dates, current_year=None, detailed=False):
    """Counts birth dates per bucket; missing dates are skipped."""
    buckets = DETAILED_AGE_BUCKETS if detailed else AGE_BUCKETS
    classify = detailed_age_bucket if detailed else age_bucket
    distribution = {bucket: 0 for bucket in buckets}
    for birth_date in birth_dates:
        if birth_date is None:
            continue
        distribution[classify(birth_date, current_year)] += 1
    return distribution


def format_rate(part, total):
    """Percentage string with two decimals, '0%' when there is nothing to divide."""
    if not total:
        return '0%'
    return f'{part / total * 100:.2f}%'


def rate_value(rate):
    """Numeric value of a string produced by format_rate."""
    return float(str(rate).rstrip('%') or 0)


def ratio(part, total):
    return round(part / total, 2) if total else 0


def distribution(query, column):
    """GROUP BY ``column`` over ``query``, as {value: count}."""
    rows = query.with_entities(column, func.count()).group_by(column).all()
    return {str(value) if value is not None else UNKNOWN: int(count) for value, count in rows}


def numeric_stats(query, expression, prefix=''):
    """AVG/MAX/MIN (and SUM) of ``expression`` over ``query``."""
    avg_, max_, min_, sum_ = query.with_entities(
        func.avg(expression), func.max(expression), func.min(expression), func.sum(expression)
    ).one()
    return {
        f'avg_{prefix}': round(float(avg_), 2) if avg_ is not None else 0,
        f'max_{prefix}': int(max_) if max_ is not None else 0,
        f'min_{prefix}': int(min_) if min_ is not None else 0,
        f'total_{prefix}': int(sum_) if sum_ is not None else 0,
    }


def count_non_empty(query, column):
    """Rows whose JSON list column holds at least one entry."""
    return sum(1 for (value,) in query.with_entities(column).all() if value)


def window_counts(query, created_column, now=None, recent_days=30, older_days=90):
    """Counts for the last ``recent_days`` and the ``recent_days..older_days`` window before it."""
    now = now or datetime.utcnow()
    recent_start = now - timedelta(days=recent_days)
    older_start = now - timedelta(days=older_days)
    recent = query.filter(created_column >= recent_start).count()
    older = query.filter(created_column >= older_start, created_column < recent_start).count()
    return recent, older


def database_dialect():
    return db.engine.dialect.name


def process_info():
    """Uptime in seconds and peak resident memory in MB for the current process."""
    # ru_maxrss is reported in kilobytes on Linux
    usage = resource.getrusage(resource.RUSAGE_SELF)
    return {
        'uptime': round(time.monotonic() - _PROCESS_STARTED),
        'memory_usage': {
            'max_rss': round(usage.ru_maxrss / 1024),
            'gc_objects': len(gc.get_objects()),
        },
    }
