"""
Privacy-aware pageview and event ingestion for 941 Apps projects.

Usage:
    from ingest_941 import IngestConfig, setup_ingest

    ingest = setup_ingest(IngestConfig.from_env())

    # Mount the endpoint in an existing app (await ingest.aclose() on shutdown)
    app.include_router(ingest.router, prefix="/api")

    # Or serve it on its own
    app = ingest.create_app()

    # In templates: {{ ingest.tracking_script("https://stats.example.com/api") }}
"""

import json

from .classifier import Classifier, ClassificationResult
from .config import IngestConfig
from .errors import (
    AuthorizationError,
    IngestError,
    PrivacyRejection,
    StorageError,
)
from .geo import create_locator
from .models import Site, TrackRequest
from .pipeline import IngestPipeline
from .routes import create_app, create_track_router
from .storage import D1Store, IngestStore, MemoryStore

__version__ = "0.1.0"
__all__ = [
    "setup_ingest", "Ingest", "IngestConfig", "IngestPipeline",
    "Classifier", "ClassificationResult", "Site", "TrackRequest",
    "IngestStore", "D1Store", "MemoryStore",
    "IngestError", "AuthorizationError", "PrivacyRejection", "StorageError",
]


class Ingest:
    """Main ingestion interface: pipeline, router and tracking snippet."""

    def __init__(self, config: IngestConfig, store: IngestStore, classifier: Classifier | None = None):
        self.config = config
        self.store = store
        self.pipeline = IngestPipeline(
            store,
            config,
            classifier=classifier or Classifier(geo_locator=create_locator(config.geoip_db_path)),
        )
        self.router = create_track_router(self.pipeline)

    def create_app(self, prefix: str = ""):
        return create_app(self.pipeline, prefix=prefix)

    async def aclose(self) -> None:
        """Release connections; call from the host app's shutdown when mounting the router."""
        await self.pipeline.aclose()

    def tracking_script(self, endpoint_url: str, domain_key: str | None = None, respect_dnt: bool = True) -> str:
        """Generate the tracking script HTML for templates.

        Features:
        - Initial pageload tracking
        - SPA navigation support (pushState, popstate), previous URL as referrer
        - Custom events via window.pa.track({name, value, unit})
        - Optional X-Domain-Key header and Do Not Track support

        Args:
            endpoint_url: Base URL the router is mounted at (no trailing /track)
            domain_key: The site's domain key, when key restriction is enabled
            respect_dnt: Skip tracking for visitors with Do Not Track enabled
        """
        url = json.dumps(endpoint_url.rstrip("/") + "/track")
        key = json.dumps(domain_key or "")
        dnt = "true" if respect_dnt else "false"
        return f'''<script>
(function(){{
  var w=window,d=document,l=location,h=history;
  var url={url},key={key},dnt={dnt};

  function send(event,referrer){{
    if(dnt&&(navigator.doNotTrack==="1"||w.doNotTrack==="1"))return;
    var data={{
      domain:l.hostname,
      page:l.href.replace(/#.*$/,""),
      referrer:referrer===undefined?d.referrer:referrer,
      language:(navigator.language||"").slice(0,2),
      screen_resolution:screen.width+"x"+screen.height
    }};
    if(event)data.event=event;
    var r=new XMLHttpRequest();
    r.open("POST",url,true);
    r.setRequestHeader("Content-Type","application/json; charset=utf-8");
    if(key)r.setRequestHeader("X-Domain-Key",key);
    r.send(JSON.stringify(data));
  }}

  var push=h.pushState;
  h.pushState=function(){{
    var ref=l.href.replace(/#.*$/,"");
    push.apply(h,arguments);
    send(null,ref);
  }};
  w.addEventListener("popstate",function(){{send(null)}});

  w.pa={{track:function(event){{send(event)}}}};
  send(null);
}})();
</script>'''


def setup_ingest(
    config: IngestConfig,
    store: IngestStore | None = None,
    classifier: Classifier | None = None,
) -> Ingest:
    """
    Set up ingestion for a deployment.

    Args:
        config: Deployment configuration
        store: Storage backend. Defaults to Cloudflare D1 from the config's
               credentials.
        classifier: Custom classifier (user-agent parser / geo locator)

    Returns:
        Ingest instance with router, create_app() and tracking_script()

    Raises:
        ValueError: No store given and no D1 credentials configured
    """
    if store is None:
        if not config.has_d1:
            raise ValueError("D1 credentials are required when no store is given")
        store = D1Store(
            d1_database_id=config.d1_database_id,
            cf_account_id=config.cf_account_id,
            cf_api_token=config.cf_api_token,
            timeout=config.d1_timeout_seconds,
        )
    return Ingest(config, store, classifier=classifier)
