"""
Step 01: Basic Fetch

Fetches the jurisdiction's permit page (or its website when no permit
URL is known) and extracts the heuristic baseline.

What it does:
- GET the start page; a failure here fails the whole pipeline
- With crawling enabled, crawl the site from the start page and merge
  every visited page's fees, contacts, requirements, processing times
  and forms
- Without crawling, extract the start page alone
- Collect permit type names from the start page

Output stored in ctx:
- html / soup / final_url of the start page
- pages (url -> text), forms, fees, contact, requirements, processing_times
- permit_names
"""

from bs4 import BeautifulSoup

from permit_agent.core.errors import FetchError
from permit_agent.core.models import SourceType
from permit_agent.jobs.steps.base import BaseStep, PipelineContext, StepError
from permit_agent.services.detection import detect_page_forms
from permit_agent.services.extraction.content_extractor import extract_content, extract_permit_types
from permit_agent.services.merge import merge_contact, merge_fees, merge_requirements
from permit_agent.services.web_crawler import PermitCrawler


class FetchStep(BaseStep):
    label = "Basic Fetch"
    description = "Fetching the jurisdiction site and extracting baseline data..."

    async def run(self, ctx: PipelineContext) -> str:
        try:
            page = await ctx.fetcher.get(ctx.start_url)
        except FetchError as e:
            raise StepError(f"Could not fetch {ctx.start_url}: {e}") from e

        ctx.final_url = page.final_url
        ctx.html = page.text
        ctx.soup = BeautifulSoup(ctx.html, "lxml")
        ctx.add_source(SourceType.WEBSITE, ctx.final_url)
        ctx.add_technique("html_extraction")

        content = extract_content(ctx.soup, ctx.final_url)
        ctx.fees = list(content.fees)
        ctx.contact = content.contact
        ctx.requirements = list(content.requirements)
        ctx.processing_times = dict(content.processing_times)
        ctx.pages[ctx.final_url] = " ".join(ctx.soup.get_text(" ", strip=True).split())
        ctx.permit_names = extract_permit_types(ctx.soup)

        if not ctx.options.crawl:
            ctx.forms = detect_page_forms(ctx.soup, ctx.final_url, ctx.html)
            return f"Single page: {len(ctx.fees)} fees, {len(ctx.requirements)} requirements"

        crawler = PermitCrawler(
            ctx.fetcher,
            settings=ctx.settings,
            max_depth=ctx.options.max_depth,
            max_pages=ctx.options.max_pages,
        )
        crawl = await crawler.crawl(ctx.final_url, html=ctx.html)
        ctx.add_technique("crawl")

        ctx.forms = list(crawl.forms)
        ctx.fees = merge_fees(ctx.fees, crawl.fees)
        ctx.requirements = merge_requirements(ctx.requirements, crawl.requirements)
        ctx.processing_times = {**crawl.processing_times, **ctx.processing_times}
        for contact in crawl.contacts.values():
            ctx.contact = merge_contact(ctx.contact, contact)
        ctx.pages.update(crawl.content)
        for url in crawl.visited_urls:
            ctx.add_source(SourceType.WEBSITE, url)

        return (
            f"Crawled {crawl.pages_visited} pages: {len(ctx.forms)} forms, "
            f"{len(ctx.fees)} fees, {len(ctx.requirements)} requirements"
        )
