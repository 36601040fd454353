import json
import logging
from datetime import datetime
from typing import Any, AsyncGenerator, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, ValidationError
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from repoaudit.demux import StreamDemultiplexer
from repoaudit.dependencies import get_collector, get_review_generator, get_settings, get_vault
from repoaudit.generators import ReviewGenerator
from repoaudit.github import CollectionError, EvidenceCollector, RateLimitedError, RepositoryNotFoundError
from repoaudit.models import AnalysisResult, EvidenceBundle, StreamReset, TerminalError, TextDelta
from repoaudit.utils import parse_github_url
from repoaudit.vault import Credential, CredentialVault, ServiceClass

settings = get_settings()

# Initialize Limiter
limiter = Limiter(key_func=get_remote_address)

app = FastAPI(
    title="RepoAudit API",
    description="Streams an LLM-backed architecture review of a public GitHub repository.",
    version="1.0.0",
)

# Register Limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:8000",
    "http://127.0.0.1:8000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ReviewRequest(BaseModel):
    url: str = Field(..., description="GitHub repository URL, e.g. https://github.com/owner/repo.")


class CredentialCreate(BaseModel):
    name: str = Field(..., min_length=1, description="Label shown in the credential list.")
    service_class: ServiceClass
    secret: str = Field(..., min_length=1)


class CredentialView(BaseModel):
    id: str
    display_name: str
    service_class: ServiceClass
    masked_secret: str
    rate_limited: bool
    rate_limited_until: Optional[datetime] = None


def mask_secret(secret: str) -> str:
    if len(secret) <= 8:
        return "****"
    return f"{secret[:4]}...{secret[-4:]}"


def to_view(credential: Credential, vault: CredentialVault) -> CredentialView:
    return CredentialView(
        id=credential.id,
        display_name=credential.display_name,
        service_class=credential.service_class,
        masked_secret=mask_secret(credential.secret.get_secret_value()),
        rate_limited=vault.is_rate_limited(credential),
        rate_limited_until=credential.rate_limited_until,
    )


def normalize_analysis(block: Dict[str, Any]) -> Dict[str, Any]:
    try:
        return AnalysisResult.model_validate(block).model_dump(by_alias=True)
    except ValidationError as e:
        logging.warning(f"Analysis block does not match schema, forwarding as-is: {e}")
        return block


def ndjson(payload: Dict[str, Any]) -> str:
    return json.dumps(payload) + "\n"


async def collect_evidence(collector: EvidenceCollector, owner: str, repo: str) -> EvidenceBundle:
    try:
        return await collector.collect(owner, repo)
    except RepositoryNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RateLimitedError as e:
        raise HTTPException(status_code=429, detail=str(e))
    except CollectionError as e:
        logging.error(f"Evidence collection failed for {owner}/{repo}: {e}")
        raise HTTPException(status_code=502, detail=str(e))


@app.post("/review", tags=["Review"])
@limiter.limit(settings.RATE_LIMIT)
async def review(
    request: Request,
    review_request: ReviewRequest,
    collector: EvidenceCollector = Depends(get_collector),
    generator: ReviewGenerator = Depends(get_review_generator),
):
    parsed = parse_github_url(review_request.url)
    if parsed is None:
        raise HTTPException(status_code=400, detail="Invalid GitHub repository URL")

    owner, repo = parsed
    bundle = await collect_evidence(collector, owner, repo)

    async def generate_stream() -> AsyncGenerator[str, None]:
        demux = StreamDemultiplexer()
        terminal = None
        async for event in generator.generate(bundle):
            if isinstance(event, TextDelta):
                narrative, block = demux.feed(event.content)
                if narrative:
                    yield ndjson(TextDelta(content=narrative).model_dump())
                if block is not None:
                    yield ndjson({"type": "analysis", "data": normalize_analysis(block)})
                continue

            if isinstance(event, StreamReset):
                # Provider retried from scratch; the client drops what it has so far
                demux = StreamDemultiplexer()
                yield ndjson(event.model_dump())
                continue

            if isinstance(event, TerminalError):
                # Always the last event; held-back narrative goes out first
                terminal = event
                continue
            yield ndjson(event.model_dump())

        narrative, _ = demux.finish()
        if narrative:
            yield ndjson(TextDelta(content=narrative).model_dump())
        if terminal is not None:
            yield ndjson(terminal.model_dump())

    return StreamingResponse(generate_stream(), media_type="application/x-ndjson")


@app.get("/repos/{owner}/{repo}/evidence", tags=["Review"])
async def get_evidence(
    owner: str,
    repo: str,
    collector: EvidenceCollector = Depends(get_collector),
) -> EvidenceBundle:
    return await collect_evidence(collector, owner, repo)


@app.get("/credentials", tags=["Credentials"])
async def list_credentials(vault: CredentialVault = Depends(get_vault)) -> List[CredentialView]:
    return [to_view(c, vault) for c in vault.list()]


@app.post("/credentials", tags=["Credentials"], status_code=201)
async def add_credential(
    payload: CredentialCreate,
    vault: CredentialVault = Depends(get_vault),
) -> CredentialView:
    credential = vault.add(payload.name, payload.service_class, payload.secret)
    logging.info(f"Added {credential.service_class.value} credential {credential.display_name}")
    return to_view(credential, vault)


@app.delete("/credentials/{credential_id}", tags=["Credentials"], status_code=204)
async def remove_credential(credential_id: str, vault: CredentialVault = Depends(get_vault)):
    if not vault.remove(credential_id):
        raise HTTPException(status_code=404, detail="Credential not found")
