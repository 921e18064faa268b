"""
Services layer for Permit Agent business logic.

MODULES:
- discovery/: Jurisdiction discovery (candidate domains + batch validation + portals)
- detection/: Form, vendor, dynamic-endpoint, flow and system detection
- extraction/: Data extraction (HTML, PDF, AI)

STANDALONE SERVICES:
- fetcher: Rate-limited, retrying HTTP transport with read-through cache
- cache: Quality-aware two-tier cache
- web_crawler: Priority-ordered permit site crawler
- url_utils: URL normalization, safety checks and robots.txt
- retry_utils: Retry with exponential backoff
- merge: Heuristic / external data merge rules
- validator: Heuristic data validation

ARCHITECTURE:
1. Discovery: discovery.DiscoveryManager -> address -> Jurisdiction + permit URL
2. Baseline: fetcher + web_crawler + extraction.content_extractor
3. Detection: detection.* over the crawled pages
4. Enrichment: extraction.pdf_analyzer + extraction.ai_parser
5. Validation: merge + validator
"""
