from __future__ import annotations
import os
from app import create_app
from app.extensions import db

def main() -> None:
    flask_app = create_app()

    with flask_app.app_context():
        db.create_all()

    # show what routes are actually mounted
    flask_app.logger.info("Mounted %d routes", len(list(flask_app.url_map.iter_rules())))
    for r in sorted(flask_app.url_map.iter_rules(), key=lambda x: x.rule):
        flask_app.logger.debug("%s %s", ",".join(sorted(r.methods - {"HEAD", "OPTIONS"})), r.rule)

    debug_enabled = os.environ.get("FLASK_DEBUG", "0") in {"1", "true", "True"}
    flask_app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)), debug=debug_enabled)

if __name__ == "__main__":
    main()
