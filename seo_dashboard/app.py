import logging
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import (
    agencies, ai_readiness, audits, briefs, clients, competitors, domain, gaps,
    keywords, optimization, scheduler, tasks
)
from .auth import regenerate_api_key, verify_api_key
from .config import Config, configure_logging
from .crawler import Crawler
from .dataforseo import DataForSEOClient, get_client
from .errors import (
    BudgetExceededError, DashboardError, LimitExceededError, NotFoundError, ValidationError
)
from .models import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    yield


app = FastAPI(title="SEO Agency Dashboard", lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# ERRORS
# ============================================================================

@app.exception_handler(NotFoundError)
async def not_found_handler(request, exc):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
@app.exception_handler(LimitExceededError)
async def bad_request_handler(request, exc):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(BudgetExceededError)
async def budget_handler(request, exc):
    return JSONResponse(status_code=402, content={"detail": str(exc)})


@contextmanager
def failure_message(message: str):
    """Turn unexpected errors inside a route into a logged HTTP 500"""
    try:
        yield
    except (HTTPException, DashboardError):
        raise
    except Exception:
        logger.exception(message)
        raise HTTPException(status_code=500, detail=message)


# ============================================================================
# MODELS
# ============================================================================

class AgencyRequest(BaseModel):
    name: str
    email: str
    plan_type: str = "starter"
    billing_cycle: str = "monthly"  # monthly, yearly


class PlanUpdateRequest(BaseModel):
    plan_type: str
    billing_cycle: Optional[str] = None


class ClientRequest(BaseModel):
    name: str
    website: str
    industry: Optional[str] = None
    service_tier: str = "Starter"
    status: str = "active"


class ClientUpdateRequest(BaseModel):
    name: Optional[str] = None
    website: Optional[str] = None
    industry: Optional[str] = None
    service_tier: Optional[str] = None
    status: Optional[str] = None


class AuditRequest(BaseModel):
    source: str = "api"  # api, crawl
    max_pages: Optional[int] = None


class KeywordTrackRequest(BaseModel):
    keywords: List[str]
    location: Optional[str] = None
    language: Optional[str] = None


class CompetitorRequest(BaseModel):
    domain: str
    name: Optional[str] = None


class GapRequest(BaseModel):
    competitor_id: str


class BriefRequest(BaseModel):
    keyword: str


class StatusRequest(BaseModel):
    status: str


class OptimizationRequest(BaseModel):
    url: str
    target_keyword: str


class DomainRequest(BaseModel):
    domain: str


class AIReadinessRequest(BaseModel):
    url: str
    keyword: Optional[str] = None


class TaskRequest(BaseModel):
    title: str
    description: Optional[str] = None
    priority: str = "medium"
    estimated_hours: Optional[float] = None


# ============================================================================
# DEPENDENCIES
# ============================================================================

async def get_agency(api_key: str = Header(..., alias="X-API-Key")):
    agency = verify_api_key(api_key)

    if not agency:
        raise HTTPException(status_code=401, detail="Invalid API key")

    if agency['subscription_status'] != 'active':
        raise HTTPException(
            status_code=402,  # Payment Required
            detail={
                "error": "subscription_inactive",
                "message": "Your subscription is inactive. Please update payment method.",
                "status": agency['subscription_status']
            }
        )

    return agency


async def get_paying_agency(agency: dict = Depends(get_agency)):
    """Agency that still has API budget left in its billing window"""
    allowed, info = agencies.check_budget(agency['id'])

    if not allowed:
        raise HTTPException(
            status_code=402,
            detail={
                "error": info['error'],
                "message": info.get('message', 'API budget exceeded'),
                "spend": info.get('spend'),
                "budget": info.get('budget'),
                "days_left": info.get('days_left'),
                "billing_end": info.get('billing_end')
            }
        )

    return agency


def get_api() -> DataForSEOClient:
    return get_client()


def get_crawler() -> Crawler:
    return Crawler()


def verify_admin(admin_key: str = Header(..., alias="Admin-Key")):
    if admin_key != Config.ADMIN_KEY:
        raise HTTPException(status_code=403, detail="Unauthorized")


# ============================================================================
# PUBLIC
# ============================================================================

@app.get("/health")
async def health():
    return {"status": "healthy", "service": "SEO Agency Dashboard", "mode": Config.DATAFORSEO_MODE}


@app.post("/agencies")
def create_agency(request: AgencyRequest):
    """Register a new agency; the API key is only returned here"""
    return agencies.create_agency(request.name, request.email, request.plan_type, request.billing_cycle)


# ============================================================================
# AGENCY
# ============================================================================

@app.get("/usage")
def get_usage(agency: dict = Depends(get_agency)):
    """API spend in the current billing window"""
    return agencies.get_usage_summary(agency['id'])


@app.post("/api-key/regenerate")
def rotate_api_key(agency: dict = Depends(get_agency)):
    return {"api_key": regenerate_api_key(agency['id'])}


@app.get("/dashboard")
def get_dashboard(agency: dict = Depends(get_agency)):
    return clients.get_dashboard_analytics(agency['id'])


# ============================================================================
# CLIENTS
# ============================================================================

@app.post("/clients")
def create_client(request: ClientRequest, agency: dict = Depends(get_agency)):
    return clients.create_client(
        agency['id'], request.name, request.website, request.industry,
        request.service_tier, request.status
    )


@app.get("/clients")
def list_clients(status: Optional[str] = None, service_tier: Optional[str] = None,
                 agency: dict = Depends(get_agency)):
    return clients.list_clients(agency['id'], status, service_tier)


@app.get("/clients/{client_id}")
def get_client_detail(client_id: str, agency: dict = Depends(get_agency)):
    return clients.get_client(client_id, agency['id'])


@app.patch("/clients/{client_id}")
def update_client(client_id: str, request: ClientUpdateRequest, agency: dict = Depends(get_agency)):
    return clients.update_client(client_id, agency['id'], request.model_dump(exclude_none=True))


@app.delete("/clients/{client_id}")
def delete_client(client_id: str, agency: dict = Depends(get_agency)):
    clients.delete_client(client_id, agency['id'])
    return {"message": "Client deleted", "client_id": client_id}


# ============================================================================
# AUDITS
# ============================================================================

@app.post("/clients/{client_id}/audits")
def run_audit(client_id: str, request: Optional[AuditRequest] = None,
              agency: dict = Depends(get_paying_agency),
              api: DataForSEOClient = Depends(get_api),
              crawler: Crawler = Depends(get_crawler)):
    request = request or AuditRequest()
    client = clients.get_client(client_id, agency['id'])
    with failure_message("Failed to complete audit"):
        return audits.run_full_audit(client, api, source=request.source,
                                     crawler=crawler, max_pages=request.max_pages)


@app.get("/clients/{client_id}/audits")
def list_audits(client_id: str, agency: dict = Depends(get_agency)):
    clients.get_client(client_id, agency['id'])
    return audits.list_audits(client_id)


@app.get("/audits/compare")
def compare_audits(base: str, target: str, agency: dict = Depends(get_agency)):
    return audits.compare_audits(base, target, agency['id'])


@app.get("/audits/{audit_id}")
def get_audit(audit_id: str, agency: dict = Depends(get_agency)):
    return audits.get_audit(audit_id, agency['id'])


# ============================================================================
# KEYWORDS
# ============================================================================

@app.post("/clients/{client_id}/keywords")
def track_keywords(client_id: str, request: KeywordTrackRequest,
                   agency: dict = Depends(get_paying_agency),
                   api: DataForSEOClient = Depends(get_api)):
    client = clients.get_client(client_id, agency['id'])
    with failure_message("Failed to process keyword tracking"):
        return keywords.track_keywords(client, request.keywords, api,
                                       location=request.location, language=request.language)


@app.get("/clients/{client_id}/keywords")
def list_keywords(client_id: str, agency: dict = Depends(get_agency)):
    clients.get_client(client_id, agency['id'])
    return {"keywords": keywords.list_tracked_keywords(client_id)}


@app.get("/clients/{client_id}/keywords/opportunities")
def keyword_opportunities(client_id: str, agency: dict = Depends(get_paying_agency),
                          api: DataForSEOClient = Depends(get_api)):
    client = clients.get_client(client_id, agency['id'])
    with failure_message("Failed to find opportunities"):
        return keywords.find_opportunities(client, api)


@app.get("/keywords/{keyword_id}/history")
def keyword_history(keyword_id: str, agency: dict = Depends(get_agency)):
    return keywords.get_keyword_history(keyword_id, agency['id'])


@app.delete("/keywords/{keyword_id}")
def delete_keyword(keyword_id: str, agency: dict = Depends(get_agency)):
    keywords.delete_keyword(keyword_id, agency['id'])
    return {"message": "Keyword deleted", "keyword_id": keyword_id}


# ============================================================================
# COMPETITORS & GAPS
# ============================================================================

@app.get("/clients/{client_id}/competitors")
def list_competitors(client_id: str, agency: dict = Depends(get_agency)):
    clients.get_client(client_id, agency['id'])
    return {"competitors": competitors.list_competitors(client_id)}


@app.post("/clients/{client_id}/competitors")
def add_competitor(client_id: str, request: CompetitorRequest, agency: dict = Depends(get_agency)):
    client = clients.get_client(client_id, agency['id'])
    return {"success": True, "competitor": competitors.add_competitor(client, request.domain, request.name)}


@app.get("/clients/{client_id}/competitors/discover")
def discover_competitors(client_id: str, agency: dict = Depends(get_paying_agency),
                         api: DataForSEOClient = Depends(get_api)):
    client = clients.get_client(client_id, agency['id'])
    with failure_message("Failed to discover competitors"):
        return competitors.discover_competitors(client, api)


@app.post("/competitors/{competitor_id}/analyze")
def analyze_competitor(competitor_id: str, agency: dict = Depends(get_paying_agency),
                       api: DataForSEOClient = Depends(get_api)):
    competitor = competitors.get_competitor(competitor_id, agency['id'])
    with failure_message("Failed to analyze competitor"):
        return competitors.analyze_competitor(competitor, api)


@app.get("/competitors/{competitor_id}/snapshots")
def competitor_snapshots(competitor_id: str, agency: dict = Depends(get_agency)):
    competitors.get_competitor(competitor_id, agency['id'])
    return {"snapshots": competitors.get_snapshot_history(competitor_id)}


@app.delete("/competitors/{competitor_id}")
def delete_competitor(competitor_id: str, agency: dict = Depends(get_agency)):
    competitors.delete_competitor(competitor_id, agency['id'])
    return {"message": "Competitor deleted", "competitor_id": competitor_id}


@app.post("/clients/{client_id}/gaps")
def analyze_gaps(client_id: str, request: GapRequest, agency: dict = Depends(get_paying_agency),
                 api: DataForSEOClient = Depends(get_api)):
    client = clients.get_client(client_id, agency['id'])
    competitor = competitors.get_competitor(request.competitor_id, agency['id'])
    if competitor['client_id'] != client_id:
        raise HTTPException(status_code=404, detail="Competitor not found")
    with failure_message("Failed to analyze keyword gaps"):
        return gaps.analyze_keyword_gaps(client, competitor, api)


@app.get("/clients/{client_id}/gaps")
def list_gaps(client_id: str, competitor_id: Optional[str] = None, gap_type: Optional[str] = None,
              agency: dict = Depends(get_agency)):
    clients.get_client(client_id, agency['id'])
    return {"gaps": gaps.list_gaps(client_id, competitor_id, gap_type)}


# ============================================================================
# CONTENT
# ============================================================================

@app.post("/clients/{client_id}/briefs")
def generate_brief(client_id: str, request: BriefRequest, agency: dict = Depends(get_paying_agency),
                   api: DataForSEOClient = Depends(get_api)):
    client = clients.get_client(client_id, agency['id'])
    with failure_message("Failed to generate content brief"):
        return briefs.generate_brief(client, request.keyword, api)


@app.get("/clients/{client_id}/briefs")
def list_briefs(client_id: str, status: Optional[str] = None, agency: dict = Depends(get_agency)):
    clients.get_client(client_id, agency['id'])
    return {"briefs": briefs.list_briefs(client_id, status)}


@app.get("/briefs/{brief_id}")
def get_brief(brief_id: str, agency: dict = Depends(get_agency)):
    return briefs.get_brief(brief_id, agency['id'])


@app.patch("/briefs/{brief_id}")
def update_brief(brief_id: str, request: StatusRequest, agency: dict = Depends(get_agency)):
    return briefs.update_brief_status(brief_id, request.status, agency['id'])


@app.delete("/briefs/{brief_id}")
def delete_brief(brief_id: str, agency: dict = Depends(get_agency)):
    briefs.delete_brief(brief_id, agency['id'])
    return {"message": "Brief deleted", "brief_id": brief_id}


@app.post("/clients/{client_id}/optimizations")
def optimize_page(client_id: str, request: OptimizationRequest,
                  agency: dict = Depends(get_paying_agency),
                  api: DataForSEOClient = Depends(get_api)):
    client = clients.get_client(client_id, agency['id'])
    with failure_message("Failed to analyze page"):
        return optimization.optimize_page(client, request.url, request.target_keyword, api)


@app.get("/clients/{client_id}/optimizations")
def list_optimizations(client_id: str, agency: dict = Depends(get_agency)):
    clients.get_client(client_id, agency['id'])
    return {"optimizations": optimization.list_optimizations(client_id)}


# ============================================================================
# ANALYSIS
# ============================================================================

@app.post("/domain-analysis")
def analyze_domain(request: DomainRequest, agency: dict = Depends(get_paying_agency),
                   api: DataForSEOClient = Depends(get_api)):
    with failure_message("Failed to analyze domain"):
        result = domain.analyze_domain(request.domain, api)
    agencies.record_spend(agency['id'], None, 'domain-analysis', result['apiCost'])
    return result


@app.post("/ai-readiness")
def analyze_ai_readiness(request: AIReadinessRequest, agency: dict = Depends(get_agency),
                         crawler: Crawler = Depends(get_crawler)):
    with failure_message("Failed to analyze AI readiness"):
        return ai_readiness.analyze_ai_readiness(request.url, request.keyword, crawler=crawler)


# ============================================================================
# TASKS
# ============================================================================

@app.get("/clients/{client_id}/tasks")
def list_tasks(client_id: str, status: Optional[str] = None, agency: dict = Depends(get_agency)):
    clients.get_client(client_id, agency['id'])
    return {"tasks": tasks.list_tasks(client_id, status)}


@app.post("/clients/{client_id}/tasks")
def create_task(client_id: str, request: TaskRequest, agency: dict = Depends(get_agency)):
    clients.get_client(client_id, agency['id'])
    return tasks.create_task(client_id, request.title, request.description,
                             request.priority, request.estimated_hours)


@app.patch("/tasks/{task_id}")
def update_task(task_id: str, request: StatusRequest, agency: dict = Depends(get_agency)):
    return tasks.update_task_status(task_id, request.status, agency['id'])


# ============================================================================
# ADMIN
# ============================================================================

@app.post("/agencies/{agency_id}/plan", dependencies=[Depends(verify_admin)])
def update_plan(agency_id: str, plan: PlanUpdateRequest):
    """Update agency plan (admin only)"""
    agency = agencies.change_plan(agency_id, plan.plan_type, plan.billing_cycle)
    return {"message": "Plan updated", "agency_id": agency_id, "plan": agency['plan_type'],
            "monthly_budget": agency['monthly_budget']}


@app.post("/jobs/run-due", dependencies=[Depends(verify_admin)])
def run_due_jobs(api: DataForSEOClient = Depends(get_api)):
    """Run due audits and rank checks now (admin only)"""
    started = datetime.now()
    summary = scheduler.run_due_jobs(api)
    summary['duration_ms'] = int((datetime.now() - started).total_seconds() * 1000)
    return summary


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=Config.HOST, port=Config.PORT)
