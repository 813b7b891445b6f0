"""Main Flask API for phishsentry.

Run: python -m phishsentry.api
"""

import os
import logging

from flask import Flask, request, jsonify, abort
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import redis as redis_lib
from limits.storage import storage_from_string

from .app.models import ThreatFeedResult
from .app.scanner import ScoringPipeline
from .app.scoring import ScoreAggregator, ANALYZER_TIMEOUT
from .app.threat_intel import CombinedLookup, FeedIndexLookup, SafeBrowsingClient
from .errors import InvalidSession, RateLimitExceeded
from .security.audit import AuditLogger, LoggingAuditSink, RedisAuditSink, load_audit_key
from .security.rate_limit import RateLimiter

# Logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("phishsentry.api")

# Flask app
app = Flask(__name__)

API_KEY = os.getenv("PHISHSENTRY_API_KEY", None)
AUDIT_KEY = os.getenv("PHISHSENTRY_AUDIT_KEY", None)
GSB_API_KEY = os.getenv("PHISHSENTRY_GSB_API_KEY", None)
REDIS_URL = os.getenv("REDIS_URL")
ANALYZER_TIMEOUT_S = float(os.getenv("PHISHSENTRY_ANALYZER_TIMEOUT", str(ANALYZER_TIMEOUT)))

# Outer per-IP limiter; per-caller limits live in the scoring pipeline.
# Redis backs the limiters and the audit sink when REDIS_URL is set.
audit_sink = LoggingAuditSink()
caller_limiter = RateLimiter()
if REDIS_URL:
    try:
        redis_client = redis_lib.from_url(REDIS_URL)
        redis_client.ping()
        limiter = Limiter(app=app, key_func=get_remote_address,
                          default_limits=["300 per minute"], storage_uri=REDIS_URL)
        audit_sink = RedisAuditSink(redis_client)
        caller_limiter = RateLimiter(storage=storage_from_string(REDIS_URL))
        logger.info("Using Redis at %s for rate limiting and audit records", REDIS_URL)
    except redis_lib.exceptions.RedisError:
        logger.exception("Failed to connect to Redis, falling back to in-memory limiter")
        limiter = Limiter(app=app, key_func=get_remote_address, default_limits=["300 per minute"])
else:
    limiter = Limiter(app=app, key_func=get_remote_address, default_limits=["300 per minute"])

if API_KEY:
    logger.info("API key enabled")

lookups = [FeedIndexLookup()]
if GSB_API_KEY:
    lookups.insert(0, SafeBrowsingClient(GSB_API_KEY))
    logger.info("Google Safe Browsing lookup enabled")

pipeline = ScoringPipeline(
    aggregator=ScoreAggregator(analyzer_timeout=ANALYZER_TIMEOUT_S),
    rate_limiter=caller_limiter,
    audit=AuditLogger(audit_sink, key=load_audit_key(AUDIT_KEY) if AUDIT_KEY else None),
    threat_lookup=CombinedLookup(*lookups),
    require_session=True,
)


def require_api_key() -> None:
    if not API_KEY:
        return
    key = request.headers.get("X-API-Key") or request.args.get("api_key")
    if not key or key != API_KEY:
        abort(401, description="Invalid or missing API key")


def session_token() -> str:
    return request.headers.get("X-Session-Token", "")


@app.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "ok", "version": "1.0"})


@app.route("/session", methods=["POST"])
@limiter.limit("10 per minute")
def create_session():
    require_api_key()
    data = request.get_json(silent=True) or {}
    caller_id = str(data.get("caller_id") or "").strip()
    if not caller_id:
        return jsonify({"error": "missing 'caller_id' in JSON body"}), 400
    token = pipeline.sessions.create(caller_id)
    return jsonify({"token": token, "caller_id": caller_id}), 201


@app.route("/session", methods=["GET"])
def session_info():
    require_api_key()
    caller_id = pipeline.sessions.resolve(session_token())
    if caller_id is None:
        return jsonify({"error": "invalid_session"}), 401
    return jsonify({"caller_id": caller_id,
                    "remaining": pipeline.rate_limiter.remaining(caller_id)})


@app.route("/session", methods=["DELETE"])
def revoke_session():
    require_api_key()
    revoked = pipeline.sessions.revoke(session_token())
    return jsonify({"revoked": revoked})


@app.route("/scan", methods=["POST"])
async def scan():
    require_api_key()
    data = request.get_json(silent=True)
    if not data or "url" not in data:
        return jsonify({"error": "missing 'url' in JSON body"}), 400

    url = str(data["url"]).strip()
    if not url:
        return jsonify({"error": "empty url"}), 400

    threat = None
    if data.get("threat") is not None:
        try:
            threat = ThreatFeedResult.from_dict(data["threat"])
        except (TypeError, ValueError) as e:
            return jsonify({"error": "invalid threat result", "detail": str(e)}), 400

    try:
        verdict = await pipeline.score(url, session_token=session_token() or None,
                                       threat_result=threat)
    except InvalidSession as e:
        return jsonify({"error": e.reason, "detail": e.detail}), 401
    except RateLimitExceeded as e:
        return jsonify({"error": e.reason}), 429
    except ValueError as e:
        return jsonify({"error": "invalid request", "detail": str(e)}), 400
    except Exception as e:
        logger.exception("Scanner failed: %s", e)
        return jsonify({"error": "scanner_failed"}), 500

    return jsonify(verdict.to_dict()), 200


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", 5050)), debug=False)
