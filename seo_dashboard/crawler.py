import json
import logging
import time
from typing import Dict, List, Optional
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from .config import Config

logger = logging.getLogger(__name__)

QUESTION_WORDS = ('what', 'how', 'why', 'when', 'where', 'who', 'which', 'can', 'is', 'are', 'do', 'does')


class Crawler:
    def __init__(self, session: requests.Session = None, delay: float = None):
        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': 'SEODashboard Bot/1.0'
        })
        self.delay = Config.CRAWL_DELAY if delay is None else delay
        self.visited = set()
        self.results = []

    def crawl(self, start_url: str, max_pages: int = None) -> List[Dict]:
        """Crawl a site from start_url, staying on its domain"""
        max_pages = max_pages or Config.CRAWL_MAX_PAGES
        self.visited.clear()
        self.results.clear()

        to_visit = [start_url]
        domain = urlparse(start_url).netloc

        while to_visit and len(self.results) < max_pages:
            url = to_visit.pop(0)
            if url in self.visited:
                continue

            self.visited.add(url)

            page = self.fetch_page(url, domain)
            if not page:
                continue

            self.results.append(page)

            for link in page['links']:
                if link['internal'] and link['url'] not in self.visited and link['url'] not in to_visit:
                    to_visit.append(link['url'])

            if self.delay:
                time.sleep(self.delay)

        logger.info("Crawled %d pages from %s", len(self.results), start_url)
        return self.results

    def fetch_page(self, url: str, domain: str = None) -> Optional[Dict]:
        """Fetch and parse a single page; None when it cannot be read"""
        domain = domain or urlparse(url).netloc
        try:
            response = self.session.get(url, timeout=10)
        except requests.RequestException as e:
            logger.warning("Error crawling %s: %s", url, e)
            return None

        if response.status_code != 200:
            logger.debug("Skipping %s (HTTP %s)", url, response.status_code)
            return None

        return self.parse(url, response.text, domain,
                          load_time=response.elapsed.total_seconds() * 1000,
                          status_code=response.status_code,
                          final_url=getattr(response, 'url', url) or url)

    def parse(self, url: str, html: str, domain: str = None, load_time: float = 0,
              status_code: int = 200, final_url: str = None) -> Dict:
        soup = BeautifulSoup(html, 'html.parser')
        domain = domain or urlparse(url).netloc
        h2 = self._get_headings(soup, 'h2')
        h3 = self._get_headings(soup, 'h3')

        return {
            'url': url,
            'status_code': status_code,
            'is_redirect': bool(final_url) and final_url.rstrip('/') != url.rstrip('/'),
            'is_https': urlparse(final_url or url).scheme == 'https',
            'title': self._get_title(soup),
            'meta_description': self._get_meta(soup, 'description'),
            'author': self._get_meta(soup, 'author'),
            'canonical': self._get_canonical(soup),
            'h1': self._get_headings(soup, 'h1'),
            'h2': h2,
            'h3': h3,
            'question_headings': [h for h in h2 + h3 if self._is_question(h)],
            'images': self._get_images(soup, url),
            'links': self._get_links(soup, url, domain),
            'schema_types': self._get_schema_types(soup),
            'ordered_lists': len(soup.find_all('ol')),
            'unordered_lists': len(soup.find_all('ul')),
            'has_video': bool(soup.find('video') or soup.find('iframe', src=lambda s: s and ('youtube' in s or 'vimeo' in s))),
            'has_viewport': bool(soup.find('meta', attrs={'name': 'viewport'})),
            'has_address': bool(soup.find('address')),
            'paragraphs': [p.get_text(' ', strip=True) for p in soup.find_all('p')],
            'word_count': len(soup.get_text(' ').split()),
            'load_time': load_time,
        }

    def _get_title(self, soup):
        title = soup.find('title')
        return title.string.strip() if title and title.string else None

    def _get_meta(self, soup, name):
        meta = soup.find('meta', attrs={'name': name})
        return meta['content'].strip() if meta and meta.get('content') else None

    def _get_canonical(self, soup):
        link = soup.find('link', rel='canonical')
        return link['href'].strip() if link and link.get('href') else None

    def _get_headings(self, soup, tag):
        return [h.get_text(strip=True) for h in soup.find_all(tag)]

    def _is_question(self, text):
        text = text.strip().lower()
        return text.endswith('?') or text.split(' ')[0] in QUESTION_WORDS

    def _get_images(self, soup, base_url):
        images = []
        for img in soup.find_all('img'):
            src = img.get('src')
            if src:
                images.append({
                    'src': urljoin(base_url, src),
                    'alt': img.get('alt', ''),
                    'has_alt': bool(img.get('alt'))
                })
        return images

    def _get_links(self, soup, base_url, domain):
        links = []
        for a in soup.find_all('a', href=True):
            href = a['href'].strip()
            if href and not href.startswith(('#', 'javascript:', 'mailto:', 'tel:')):
                full_url = urljoin(base_url, href).split('#')[0]
                links.append({
                    'url': full_url,
                    'text': a.get_text(strip=True)[:100],
                    'internal': urlparse(full_url).netloc == domain
                })
        return links

    def _get_schema_types(self, soup):
        """schema.org @type values from JSON-LD blocks and microdata"""
        types = set()
        for script in soup.find_all('script', type='application/ld+json'):
            try:
                data = json.loads(script.string or '')
            except ValueError:
                logger.debug("Ignoring malformed JSON-LD block")
                continue
            self._collect_types(data, types)
        for tag in soup.find_all(attrs={'itemtype': True}):
            types.add(tag['itemtype'].rstrip('/').split('/')[-1])
        return sorted(types)

    def _collect_types(self, data, types):
        if isinstance(data, list):
            for entry in data:
                self._collect_types(entry, types)
        elif isinstance(data, dict):
            declared = data.get('@type')
            if isinstance(declared, str):
                types.add(declared)
            elif isinstance(declared, list):
                types.update(t for t in declared if isinstance(t, str))
            for key in ('@graph', 'mainEntity', 'author', 'publisher'):
                if key in data:
                    self._collect_types(data[key], types)
