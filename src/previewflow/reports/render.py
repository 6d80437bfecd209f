"""Render the consolidated dashboard to HTML and JSON."""

import logging
from pathlib import Path

import aiofiles
from jinja2 import Template

from previewflow.reports.consolidator import ConsolidatedDashboard

logger = logging.getLogger(__name__)

DASHBOARD_TEMPLATE = Template(
    """\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Preview dashboard ({{ d.status }})</title>
  <style>
    body { font-family: system-ui, sans-serif; margin: 2rem; color: #222; }
    table { border-collapse: collapse; margin-bottom: 1.5rem; }
    th, td { border: 1px solid #ddd; padding: .4rem .8rem; text-align: left; }
    .succeeded, .success { color: #1a7f37; }
    .failed { color: #cf222e; }
    .cancelled, .skipped, .unavailable { color: #9a6700; }
    .card { border: 1px solid #ddd; border-radius: 6px; padding: 1rem; margin-bottom: 1rem; }
  </style>
</head>
<body>
  <h1>Preview deployment dashboard</h1>
  <p>
    Status: <strong class="{{ d.status }}">{{ d.status }}</strong>
    (exit code {{ d.exit_code }}) &middot; generated {{ d.generated_at.isoformat() }}
    &middot; {{ "%.1f"|format(d.duration) }}s
  </p>

  <h2>Workflow</h2>
  <table>
    <tr><th>Phase</th><th>Status</th><th>Duration</th><th>Fatal</th><th>Error</th></tr>
    {%- for p in d.phases %}
    <tr>
      <td>{{ p.name }}</td>
      <td class="{{ p.status }}">{{ p.status }}</td>
      <td>{{ "%.1f"|format(p.duration) }}s</td>
      <td>{{ "yes" if p.fatal else "no" }}</td>
      <td>{{ p.error or "" }}</td>
    </tr>
    {%- endfor %}
  </table>

  {%- if d.errors %}
  <h2>Errors</h2>
  {%- for group in d.errors %}
  <div class="card">
    <h3>{{ group.phase }} ({{ group.count }})</h3>
    {%- for c in group.categories %}
    <p><strong>[{{ c.category }}]</strong> x{{ c.count }}</p>
    <ul>{% for m in c.messages %}<li>{{ m }}</li>{% endfor %}</ul>
    <p><em>Suggestion:</em> {{ c.suggestion }}</p>
    {%- endfor %}
  </div>
  {%- endfor %}
  {%- endif %}

  <h2>Preview URLs</h2>
  {%- if d.urls %}
  <ul>
    {%- for site, url in d.urls.items() %}
    <li><strong>{{ site }}</strong>: <a href="{{ url }}">{{ url }}</a></li>
    {%- endfor %}
    {%- for url in d.overflow_urls %}
    <li><a href="{{ url }}">{{ url }}</a></li>
    {%- endfor %}
  </ul>
  {%- else %}
  <p class="unavailable">No preview URLs available.</p>
  {%- endif %}

  <h2>Channels</h2>
  {%- for section in d.channels %}
  <h3>{{ section.site }}</h3>
  <table>
    <tr><th>Channel</th><th>Created</th><th>URL</th><th>State</th></tr>
    {%- for c in section.current %}
    <tr><td>{{ c.id }}</td><td>{{ c.created_at.isoformat() }}</td><td>{{ c.url or "" }}</td><td>active</td></tr>
    {%- endfor %}
    {%- for c in section.evicted %}
    <tr><td>{{ c.id }}</td><td>{{ c.created_at.isoformat() }}</td><td>{{ c.url or "" }}</td><td>evicted</td></tr>
    {%- endfor %}
  </table>
  {%- else %}
  <p class="unavailable">No channel information available.</p>
  {%- endfor %}

  <h2>Quality reports</h2>
  {%- for s in d.sections %}
  <div class="card">
    <h3>{{ s.title }}</h3>
    {%- if s.available %}
    <ul>
      {%- for name, value in s.metrics.items() %}
      <li>{{ name|replace("_", " ") }}: {{ value|int if value == value|int else value }}</li>
      {%- endfor %}
    </ul>
    {%- if s.rows %}
    <table>
      <tr><th>Step</th><th>Duration</th><th>Status</th></tr>
      {%- for row in s.rows %}
      <tr><td>{{ row.name }}</td><td>{{ "%.1f"|format(row.duration) }}s</td><td class="{{ row.status }}">{{ row.status }}</td></tr>
      {%- endfor %}
    </table>
    {%- endif %}
    {%- else %}
    <p class="unavailable">Unavailable ({{ s.reason }})</p>
    {%- endif %}
  </div>
  {%- endfor %}

  {%- if d.next_steps %}
  <h2>Next steps</h2>
  <ol>{% for step in d.next_steps %}<li>{{ step }}</li>{% endfor %}</ol>
  {%- endif %}
</body>
</html>
""",
    autoescape=True,
)


def render_html(dashboard: ConsolidatedDashboard) -> str:
    return DASHBOARD_TEMPLATE.render(d=dashboard)


def render_json(dashboard: ConsolidatedDashboard) -> str:
    return dashboard.model_dump_json(indent=2)


def json_path_for(html_path: Path) -> Path:
    return html_path.with_suffix(".json")


async def write_dashboard(dashboard: ConsolidatedDashboard, html_path: Path) -> tuple[Path, Path]:
    """Write the HTML dashboard and its JSON twin side by side.

    Returns:
        (html path, json path)
    """
    html_path.parent.mkdir(parents=True, exist_ok=True)
    json_path = json_path_for(html_path)

    async with aiofiles.open(html_path, "w") as f:
        await f.write(render_html(dashboard))
    async with aiofiles.open(json_path, "w") as f:
        await f.write(render_json(dashboard))

    logger.info("Dashboard written to %s", html_path)
    return html_path, json_path
