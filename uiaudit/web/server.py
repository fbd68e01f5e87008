from __future__ import annotations
import argparse
import uvicorn
from ..config import PROFILES, load_settings
from .app import create_app

def main() -> None:
    parser = argparse.ArgumentParser(description="UI-Audit API + tableau de bord (FastAPI)")
    parser.add_argument("--config", type=str, default="config", help="Dossier ou fichier config (par défaut: ./config)")
    parser.add_argument("--profile", type=str, choices=PROFILES, default="standard", help="Profil d'évaluation")
    parser.add_argument("--backend", type=str, default=None, help="Backend de stockage (défaut: config.storage.backend)")
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Hôte (par défaut: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8765, help="Port (défaut: 8765)")
    args = parser.parse_args()

    overrides = {"backend": args.backend} if args.backend else None
    settings = load_settings(args.config, args.profile, overrides)
    app = create_app(settings)

    uvicorn.run(app, host=args.host, port=int(args.port), log_level="info")

if __name__ == "__main__":
    main()
