"""
Automatic project creation.

Steps:
0. Scan the site for tags that are already installed.
1. Ask Gemini to analyze the site and extract structured data from the analysis.
2. Generate a GTM configuration, unless the site already runs GTM (override with force_create_gtm).
3. Save the project.
4. Generate implementation code for the new configuration.

`run_auto_create` yields progress events so the route can stream them as NDJSON;
`auto_create_project` runs the same steps and returns only the result.
"""
import json
import logging

import conversion_events
import gemini
import site_scanner
import tracking_ids
from activity import feed
from models import db, Project

logger = logging.getLogger(__name__)


class AutoCreateError(Exception):
    pass


def _tag_config_value(gtm_config, tag_type, key):
    for tag in (gtm_config or {}).get("tags") or []:
        if isinstance(tag, dict) and tag.get("type") == tag_type:
            return (tag.get("config") or {}).get(key)
    return None


def extract_platform_ids(gtm_config):
    """Real (non-placeholder) IDs from a generated GTM configuration."""
    gtm_config = gtm_config or {}
    return {
        "gtm_id": tracking_ids.clean("gtm_id", (gtm_config.get("containerConfig") or {}).get("containerId")),
        "meta_pixel_id": tracking_ids.clean("meta_pixel_id", _tag_config_value(gtm_config, "Meta Pixel", "pixelId")),
        "ga4_measurement_id": tracking_ids.clean("ga4_measurement_id", _tag_config_value(gtm_config, "GA4", "measurementId")),
        "google_ads_id": tracking_ids.clean("google_ads_id", _tag_config_value(gtm_config, "Google Ads", "conversionId")),
    }


def _step(step, message, **extra):
    event = {"status": "step", "step": step, "message": message}
    event.update(extra)
    return event


def run_auto_create(user, project_name, url, force_create_gtm=False, selected_platforms=None):
    selected_platforms = selected_platforms or []
    logger.info("Starting automatic creation of project %r (%s), force_create_gtm=%s",
                project_name, url, force_create_gtm)

    # 0. Existing tags
    yield _step("scan", "Checking tags already installed on the site...")
    existing_tags = site_scanner.scan_for_tags(url)
    has_existing_gtm = site_scanner.has_gtm(existing_tags)
    yield _step("scan", f"Found {len(existing_tags)} tag(s).", existingTags=existing_tags, hasExistingGTM=has_existing_gtm)

    # 1. Site analysis
    yield _step("analyze", "Analyzing the site...")
    raw_analysis = gemini.analyze_website(url)
    analysis = gemini.extract_structured_data(raw_analysis, url)

    # 2. GTM configuration
    should_create_gtm = not has_existing_gtm or force_create_gtm
    gtm_config = None
    if should_create_gtm:
        yield _step("gtm", "Generating GTM configuration...")
        gtm_config = gemini.generate_gtm_configuration({
            "projectName": project_name,
            "url": url,
            **analysis,
        })
    else:
        yield _step("gtm", "Site already has GTM, skipping container configuration.")

    # 3. Persist
    yield _step("persist", "Saving project...")
    ids = extract_platform_ids(gtm_config) if should_create_gtm else {}
    business_type = analysis.get("businessType")
    project = Project(
        user_id=user.id,
        name=project_name,
        url=url,
        gtm_id=ids.get("gtm_id"),
        meta_pixel_id=ids.get("meta_pixel_id"),
        ga4_measurement_id=ids.get("ga4_measurement_id"),
        google_ads_id=ids.get("google_ads_id"),
        conversion_events=conversion_events.normalize_events(analysis.get("recommendedEvents")),
        business_type=business_type if isinstance(business_type, str) else None,
        detected_platforms=analysis.get("platforms") or [],
        site_analysis_data=analysis,
        existing_tags=existing_tags,
        selected_platforms=selected_platforms,
    )
    try:
        db.session.add(project)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error("Error saving project to DB: %s", e)
        raise AutoCreateError(f"Error saving project: {e}") from e

    # 4. Implementation code
    implementation_codes = None
    if should_create_gtm:
        yield _step("codes", "Generating implementation code...")
        implementation_codes = gemini.generate_implementation_codes(gtm_config, project_name)

    feed.log_event(user.id, f"Project '{project_name}' created automatically", project.id)
    logger.info("Project %s created automatically", project.id)

    yield {
        "status": "complete",
        "result": {
            "status": "success",
            "message": "Project created automatically!",
            "project": {"id": project.id, "name": project_name, "url": url},
            "analysis": analysis,
            "gtmConfig": gtm_config,
            "implementationCodes": implementation_codes,
            "hasExistingGTM": has_existing_gtm,
            "existingTags": existing_tags,
        },
    }


def auto_create_project(user, project_name, url, force_create_gtm=False, selected_platforms=None):
    result = None
    for event in run_auto_create(user, project_name, url, force_create_gtm, selected_platforms):
        if event["status"] == "complete":
            result = event["result"]
    return result


def auto_create_stream(user, project_name, url, force_create_gtm=False, selected_platforms=None):
    """NDJSON lines for the streaming route."""
    try:
        for event in run_auto_create(user, project_name, url, force_create_gtm, selected_platforms):
            yield json.dumps(event, ensure_ascii=False) + "\n"
    except Exception as e:
        logger.error("Automatic creation failed: %s", e)
        yield json.dumps({"status": "fatal", "message": str(e)}) + "\n"
