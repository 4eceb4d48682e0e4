import logging

from flask import Flask, current_app, jsonify, request
from openai import OpenAI

from site_trainer import __version__
from site_trainer.config import Settings, configure_logging
from site_trainer.crawler import Crawler
from site_trainer.exceptions import InvalidRequestError, PersistenceError
from site_trainer.generator import ContentGenerator
from site_trainer.jobs import InMemoryJobStore, SupabaseJobStore
from site_trainer.orchestrator import JobOrchestrator, TrainingRequest
from site_trainer.tokens import load_tokenizer

logger = logging.getLogger(__name__)

EXTENSION_KEY = "site_trainer"


def build_openai_client(settings: Settings):
    if not settings.openai_api_key:
        logger.error("OpenAI client could not be initialized: OPENAI_API_KEY is missing.")
        return None
    try:
        # retries are handled by ContentGenerator
        client = OpenAI(api_key=settings.openai_api_key, timeout=settings.openai_timeout, max_retries=0)
        logger.info("OpenAI client initialized successfully.")
        return client
    except Exception as e:
        logger.error(f"Failed to initialize OpenAI client: {e}")
        return None


def build_job_store(settings: Settings):
    if settings.job_store == "supabase":
        return SupabaseJobStore.from_settings(settings)
    if settings.job_store != "memory":
        logger.warning(f"Unknown JOB_STORE '{settings.job_store}', using in-memory job store.")
    return InMemoryJobStore()


def build_orchestrator(settings: Settings, store=None, openai_client=None) -> JobOrchestrator:
    tokenizer = load_tokenizer(settings.openai_model) if settings.use_tiktoken else None
    crawler = Crawler(page_timeout=settings.page_fetch_timeout, max_crawl_seconds=settings.max_crawl_seconds)
    generator = ContentGenerator(
        openai_client if openai_client is not None else build_openai_client(settings),
        model=settings.openai_model,
        mode=settings.generation_mode,
        max_retries=settings.llm_max_retries,
        backoff_seconds=settings.llm_backoff_seconds,
        tokenizer=tokenizer,
    )
    return JobOrchestrator(store if store is not None else build_job_store(settings), crawler, generator)


def _orchestrator() -> JobOrchestrator:
    return current_app.extensions[EXTENSION_KEY]["orchestrator"]


def _settings() -> Settings:
    return current_app.extensions[EXTENSION_KEY]["settings"]


def _job_summary_row(job) -> dict:
    row = job.to_row()
    row.pop("summary", None)
    row["faqcount"] = len(row.pop("faqs") or [])
    return row


def start_training():
    data = request.get_json(silent=True)
    if data is None:
        return jsonify({"success": False, "error": "Request body must be JSON"}), 400
    settings = _settings()
    try:
        training_request = TrainingRequest.from_payload(
            data, default_max_pages=settings.default_max_pages, default_max_depth=settings.default_max_depth)
    except InvalidRequestError as e:
        logger.warning(f"Rejected training request: {e}")
        return jsonify({"success": False, "error": str(e)}), 400

    orchestrator = _orchestrator()
    if orchestrator.generator.client is None:
        return jsonify({"success": False, "error": "OpenAI service not configured."}), 503

    if not training_request.background:
        result = orchestrator.run_sync(training_request)
        return jsonify(result), 200 if result["success"] else 500

    try:
        job_id = orchestrator.start_job(training_request)
    except PersistenceError as e:
        logger.error(f"Could not create training job: {e}")
        return jsonify({"success": False, "error": f"Could not create training job: {e}"}), 500
    return jsonify({"success": True, "message": "Training job started. Poll the job status for progress.",
                    "jobId": job_id}), 202


def get_training_job(job_id):
    try:
        job = _orchestrator().store.get_job(job_id)
    except PersistenceError as e:
        return jsonify({"error": "Internal Server Error", "message": str(e)}), 500
    if job is None:
        return jsonify({"error": "Not Found", "message": "Job ID not found."}), 404
    return jsonify(job.to_row()), 200


def list_training_jobs():
    try:
        jobs = _orchestrator().store.list_jobs()
    except PersistenceError as e:
        return jsonify({"error": "Internal Server Error", "message": str(e)}), 500
    return jsonify({"total_jobs": len(jobs), "jobs": [_job_summary_row(job) for job in jobs]}), 200


def health_check():
    settings = _settings()
    orchestrator = _orchestrator()
    health_status = {"status": "ok", "message": "Website training API is running", "version": __version__,
                     "model_in_use": settings.openai_model, "generation_mode": settings.generation_mode,
                     "job_store": type(orchestrator.store).__name__}
    status_code = 200
    if orchestrator.generator.client is None:
        health_status.update({"openai_client_status": "not_initialized", "status": "error"})
        status_code = 503
    else:
        health_status["openai_client_status"] = "initialized"
    health_status["tokenizer_available"] = orchestrator.generator.tokenizer is not None
    return jsonify(health_status), status_code


def not_found(error):
    return jsonify({"error": "Not Found", "message": "Endpoint does not exist."}), 404


def method_not_allowed(error):
    return jsonify({"error": "Method Not Allowed"}), 405


def internal_server_error(error):
    logger.error(f"Internal Server Error: {error}", exc_info=True)
    return jsonify({"error": "Internal Server Error", "message": "An unexpected server error."}), 500


def create_app(settings: Settings | None = None, orchestrator: JobOrchestrator | None = None) -> Flask:
    settings = settings or Settings.from_env()
    app = Flask(__name__)
    app.extensions[EXTENSION_KEY] = {
        "settings": settings,
        "orchestrator": orchestrator or build_orchestrator(settings),
    }
    app.add_url_rule('/api/train', view_func=start_training, methods=['POST'])
    app.add_url_rule('/api/training-jobs/<job_id>', view_func=get_training_job, methods=['GET'])
    app.add_url_rule('/api/training-jobs', view_func=list_training_jobs, methods=['GET'])
    app.add_url_rule('/api/health', view_func=health_check, methods=['GET'])
    app.register_error_handler(404, not_found)
    app.register_error_handler(405, method_not_allowed)
    app.register_error_handler(500, internal_server_error)
    return app


def main():
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    app = create_app(settings)
    orchestrator = app.extensions[EXTENSION_KEY]["orchestrator"]
    if orchestrator.generator.client is None:
        logger.error("FATAL: Service cannot start without an OpenAI client. Check .env and logs.")
        raise SystemExit(1)
    logger.info("Website training API starting...")
    logger.info(f"Using OpenAI Model: {settings.openai_model} (mode: {settings.generation_mode})")
    logger.info(f"Job store: {type(orchestrator.store).__name__}")
    logger.info(f"Crawl limits: {settings.page_fetch_timeout}s per page, {settings.max_crawl_seconds}s per crawl")
    app.run(host='0.0.0.0', port=settings.port)


if __name__ == '__main__':
    main()
