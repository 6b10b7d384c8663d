"""Fixed chat texts and HTML detection."""

from __future__ import annotations

import re

OFFLINE_SITE_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8" />
<meta name="viewport" content="width=device-width, initial-scale=1.0" />
<title>AI Generated Site</title>
<style>body{font-family:system-ui,Segoe UI,Roboto,Arial,sans-serif;margin:2rem}header{margin-bottom:1rem}h1{color:#111827}</style>
</head>
<body>
<header>
  <h1>Welcome to Your Website</h1>
  <p>This is a basic page generated in offline/test mode.</p>
</header>
<main>
  <section>
    <h2>Getting Started</h2>
    <p>Edit this content in the Editor tab to see live updates.</p>
  </section>
</main>
</body>
</html>"""

INTRO_MESSAGE = """\U0001f680 **AI Site Generator**

I'm your AI assistant for creating beautiful websites! Ask me to create any type of website and I'll generate complete HTML, CSS, and JavaScript code.

**Try asking me:**
- Create a portfolio website
- Make a landing page for a restaurant
- Build a blog template
- Design a company homepage"""

_DOCTYPE_RE = re.compile(r"<!DOCTYPE\s+html", re.IGNORECASE)
_HTML_OPEN_RE = re.compile(r"<html[\s>]", re.IGNORECASE)
_HTML_CLOSE_RE = re.compile(r"</html>", re.IGNORECASE)


def looks_like_html_document(text: str) -> bool:
    """True for a doctype, or an ``<html ...>`` root that is also closed."""
    if _DOCTYPE_RE.search(text):
        return True
    return bool(_HTML_OPEN_RE.search(text) and _HTML_CLOSE_RE.search(text))
