"""Dashboard HTML with inline CSS and vanilla JS."""


def get_dashboard_html() -> str:
    return """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>Turnaround Tracker</title>
<style>
  :root {
    --bg: #0d1117; --surface: #161b22; --border: #30363d;
    --text: #e6edf3; --text-muted: #8b949e; --text-dim: #6e7681;
    --not-started: #8b949e; --in-progress: #58a6ff; --completed: #3fb950; --on-hold: #d29922;
    --delayed: #f85149;
  }
  * { margin: 0; padding: 0; box-sizing: border-box; }
  body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Helvetica, Arial, sans-serif;
         background: var(--bg); color: var(--text); line-height: 1.5; }
  .container { max-width: 1040px; margin: 0 auto; padding: 24px 16px; }

  header { display: flex; justify-content: space-between; align-items: center;
           padding-bottom: 16px; border-bottom: 1px solid var(--border); margin-bottom: 24px; }
  header h1 { font-size: 20px; font-weight: 600; }
  header span { font-size: 12px; color: var(--text-dim); }

  /* Stat cards */
  .cards { display: grid; grid-template-columns: repeat(auto-fit, minmax(180px, 1fr));
           gap: 12px; margin-bottom: 24px; }
  .card { background: var(--surface); border: 1px solid var(--border); border-radius: 8px; padding: 14px; }
  .card .label { font-size: 12px; color: var(--text-muted); text-transform: uppercase; letter-spacing: 0.5px; }
  .card .value { font-size: 22px; font-weight: 600; }
  .card .sub { font-size: 12px; color: var(--text-dim); }
  .progress-bar { height: 8px; background: var(--bg); border-radius: 4px; overflow: hidden;
                  border: 1px solid var(--border); margin-top: 6px; }
  .progress-bar .fill { height: 100%; background: var(--completed); transition: width 0.3s; }

  section { margin-bottom: 24px; }
  section h2 { font-size: 15px; margin-bottom: 8px; }
  .row { background: var(--surface); border: 1px solid var(--border); border-radius: 8px;
         padding: 10px 14px; margin-bottom: 2px; display: flex; gap: 10px; align-items: center;
         font-size: 13px; }
  .row .title { font-weight: 600; flex: 1; }
  .row .meta { color: var(--text-muted); font-size: 12px; }
  .badge { display: inline-block; padding: 2px 10px; border-radius: 12px; font-size: 11px;
           font-weight: 600; text-transform: uppercase; letter-spacing: 0.5px; }
  .badge.Not-Started { background: rgba(139,148,158,0.15); color: var(--not-started); }
  .badge.In-Progress, .badge.Today, .badge.Upcoming { background: rgba(88,166,255,0.15); color: var(--in-progress); }
  .badge.Completed { background: rgba(63,185,80,0.15); color: var(--completed); }
  .badge.On-Hold { background: rgba(210,153,34,0.15); color: var(--on-hold); }
  .badge.Overdue { background: rgba(248,81,73,0.15); color: var(--delayed); }
  .empty { text-align: center; padding: 24px; color: var(--text-muted); font-size: 13px; }
</style>
</head>
<body>
<div class="container">
  <header>
    <h1>Turnaround Tracker</h1>
    <span id="as-of"></span>
  </header>
  <div id="cards" class="cards"></div>
  <section><h2>Packages</h2><div id="packages"></div></section>
  <section><h2>Active work</h2><div id="active"></div></section>
  <section><h2>Hold reasons</h2><div id="holds"></div></section>
</div>

<script>
async function fetchJSON(path) {
  const res = await fetch(path);
  if (!res.ok) return null;
  return res.json();
}

function fmt(iso) {
  if (!iso) return 'N/A';
  return new Date(iso).toLocaleString([], {dateStyle: 'medium', timeStyle: 'short'});
}

function card(label, value, sub, pct) {
  const bar = pct === undefined ? '' :
    `<div class="progress-bar"><div class="fill" style="width:${pct}%"></div></div>`;
  return `<div class="card"><div class="label">${label}</div><div class="value">${value}</div>
    <div class="sub">${sub || ''}</div>${bar}</div>`;
}

function badge(text) {
  return `<span class="badge ${text.replace(' ', '-')}">${esc(text)}</span>`;
}

async function loadDashboard() {
  const [stats, packages, holds] = await Promise.all([
    fetchJSON('/api/stats'),
    fetchJSON('/api/packages'),
    fetchJSON('/api/holds/summary'),
  ]);

  if (stats) {
    const v = stats.schedule_variance_hours;
    const trend = v > 0 ? 'ahead' : v < 0 ? 'behind' : 'on plan';
    document.getElementById('as-of').textContent = 'As of ' + fmt(stats.as_of);
    document.getElementById('cards').innerHTML =
      card('Actual progress', stats.actual_progress + '%', '', stats.actual_progress) +
      card('Planned progress', stats.planned_progress + '%', '', stats.planned_progress) +
      card('Completed', stats.counts.completed, stats.counts.delayed + ' delayed') +
      card('On track', stats.counts.on_track, stats.counts.upcoming + ' upcoming') +
      card('Estimated end', fmt(stats.estimated_end_date), 'Planned ' + fmt(stats.planned_end_date)) +
      card('Variance', Math.abs(v).toFixed(1) + 'h', trend);

    const active = stats.in_progress || [];
    document.getElementById('active').innerHTML = active.length === 0
      ? '<div class="empty">No activities in progress</div>'
      : active.map(a => `<div class="row">${badge(a.label)}
          <span class="title">${esc(a.title)}</span>
          <span class="meta">${esc(a.package_id)} / ${esc(a.tag)} &middot; ${fmt(a.deadline)}</span></div>`).join('');
  }

  const pk = document.getElementById('packages');
  if (!packages || packages.length === 0) {
    pk.innerHTML = '<div class="empty">No packages yet. Create one with <code>tt package add</code></div>';
  } else {
    pk.innerHTML = packages.map(p => `<div class="row">${badge(p.metrics.status)}
      <span class="title">${esc(p.name)}</span>
      <span class="meta">${p.metrics.progress}% &middot; ${fmt(p.start_date)} &rarr; ${fmt(p.end_date)}</span></div>`).join('');
  }

  const hd = document.getElementById('holds');
  if (!holds || holds.length === 0) {
    hd.innerHTML = '<div class="empty">No holds recorded</div>';
  } else {
    hd.innerHTML = holds.map(h => `<div class="row"><span class="title">${esc(h.reason)}</span>
      <span class="meta">${h.total_duration} &middot; ${h.count}x</span></div>`).join('');
  }
}

function esc(s) {
  if (!s) return '';
  const d = document.createElement('div');
  d.textContent = s;
  return d.innerHTML;
}

loadDashboard();
setInterval(loadDashboard, 60000);
</script>
</body>
</html>"""
