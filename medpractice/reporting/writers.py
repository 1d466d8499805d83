import csv
import json
import os
from datetime import datetime
from flask import current_app, render_template


def report_timestamp(now=None):
    """UTC ISO timestamp usable in file names, e.g. 2024-05-01T10-20-30-123Z."""
    now = now or datetime.utcnow()
    stamp = now.isoformat(timespec='milliseconds') + 'Z'
    return stamp.replace(':', '-').replace('.', '-')


def ensure_dir(path):
    os.makedirs(path, exist_ok=True)
    return path


def write_json(path, data):
    with open(path, 'w', encoding='utf-8') as fh:
        json.dump(data, fh, indent=2, ensure_ascii=False)
    return path


def read_json(path):
    with open(path, encoding='utf-8') as fh:
        return json.load(fh)


def write_text(path, text):
    with open(path, 'w', encoding='utf-8') as fh:
        fh.write(text)
    return path


def write_csv(path, rows):
    with open(path, 'w', encoding='utf-8', newline='') as fh:
        writer = csv.writer(fh)
        writer.writerows(rows)
    return path


def write_html(path, template, **context):
    """Renders one of the templates under templates/reports/."""
    html = render_template(f'reports/{template}', **context)
    return write_text(path, html)


def log_outputs(paths):
    current_app.logger.info(f"Reports written: {', '.join(paths)}")
    return paths
