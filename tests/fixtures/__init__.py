"""Test fixtures for pipeline testing.

Builders for the documents workers exchange with the pipeline:
- synthesis artifact documents (web / repo research output)
- built resources with YAML frontmatter
- build reports
- in-process worker handlers that write all of the above
"""

from __future__ import annotations
