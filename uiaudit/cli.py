from __future__ import annotations
import argparse, asyncio, json, sys
from pathlib import Path
from . import __version__
from .config import PROFILES, load_settings
from .core.errors import AuditError
from .service import AuditService
from .tools.logs import log_event

# === Affichage ================================================================
def _print_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))

def _read_scores(src: str) -> list[dict]:
    """Scores JSON : liste d'objets {id, score, reason, suggestion?} (fichier, ou '-' pour stdin)."""
    text = sys.stdin.read() if src == "-" else Path(src).read_text(encoding="utf-8")
    data = json.loads(text)
    if isinstance(data, dict):
        data = data.get("scores", [])
    if not isinstance(data, list):
        raise ValueError("Le fichier de scores doit contenir une liste")
    return data

# === Arguments ================================================================
def _argparser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser("uiaudit", description="UI-Audit : évaluation pas à pas d'interfaces par checklist")
    ap.add_argument("--config", default="config", help="Chemin vers le dossier de configuration.")
    ap.add_argument("--profile", choices=PROFILES, default="standard", help="Profil d'évaluation.")
    ap.add_argument("--data-dir", help="Dossier racine des données (cas, évaluations, base, journaux).")
    ap.add_argument("--backend", choices=["files", "sqlite", "memory"], help="Surcharge du backend de stockage.")
    ap.add_argument("--version", action="store_true", help="Afficher la version et quitter.")
    sub = ap.add_subparsers(dest="command")

    p = sub.add_parser("register", help="Enregistrer (ou ré-enregistrer) une étape.")
    p.add_argument("case")
    p.add_argument("step", type=int)
    p.add_argument("--description", required=True)
    p.add_argument("--action", choices=["tap", "swipe", "screenshot"], default="screenshot")
    p.add_argument("--screenshot", required=True, help="Référence opaque de la capture.")
    p.add_argument("--coords", help='Coordonnées JSON, ex: {"x": 0.5, "y": 0.2}')
    p.add_argument("--expected", help="Résultat attendu de l'action.")

    p = sub.add_parser("evaluate", help="État courant d'une étape, ou soumission d'une note.")
    p.add_argument("case")
    p.add_argument("step", type=int)
    p.add_argument("--token")
    p.add_argument("--score", type=float)
    p.add_argument("--reason")

    p = sub.add_parser("report", help="Rapport Markdown (tous les cas par défaut).")
    p.add_argument("cases", nargs="*")

    p = sub.add_parser("criteria", help="Lister les dimensions de la checklist d'étape.")
    p.add_argument("--dimension")

    p = sub.add_parser("review", help="Évaluation ad hoc en une fois (session créée puis soumise).")
    p.add_argument("--type", choices=["screen", "style"], default="screen")
    p.add_argument("--subject", help="Nom de l'écran (type screen).")
    p.add_argument("--screens", nargs="*", default=[], help="Écrans comparés (type style).")
    p.add_argument("--scores", required=True, help="Fichier JSON des scores, '-' pour stdin.")

    p = sub.add_parser("logs", help="Historique des évaluations ad hoc.")
    p.add_argument("--session")
    p.add_argument("--limit", type=int, default=10)
    return ap

def build_parser() -> argparse.ArgumentParser:
    return _argparser()

# === Commandes ================================================================
async def _run(svc: AuditService, args) -> str:
    """Exécute la sous-commande ; renvoie un résumé pour le journal d'opérations."""
    if args.command == "register":
        coords = json.loads(args.coords) if args.coords else None
        step = await svc.register_step(
            args.case, args.step, args.description, args.action, args.screenshot, coords, args.expected
        )
        _print_json(step.to_dict())
        return f"register case={args.case} step={args.step}"

    if args.command == "evaluate":
        res = await svc.evaluate(args.case, args.step, args.token, args.score, args.reason)
        _print_json(res.as_dict())
        return f"evaluate case={args.case} step={args.step} submit={args.token is not None}"

    if args.command == "report":
        print(await svc.build_report(args.cases or None))
        return f"report cases={','.join(args.cases) or '*'}"

    if args.command == "criteria":
        _print_json([d.as_dict() for d in svc.get_criteria(args.dimension)])
        return "criteria"

    if args.command == "review":
        scores = _read_scores(args.scores)
        if args.type == "style":
            session = await svc.create_style_session(args.screens)
        else:
            session = await svc.create_session("screen", args.subject)
        entry = await svc.submit_session(session.session_id, scores)
        _print_json(entry.to_dict())
        return f"review {args.type} subject={entry.subject_name} passed={entry.passed}"

    if args.command == "logs":
        entries, summary = await svc.query_logs(args.session, args.limit)
        _print_json({"logs": [e.to_dict() for e in entries], "summary": summary.as_dict()})
        return "logs"

    raise ValueError(f"Commande inconnue: {args.command}")

# === Main ====================================================================
def main(argv: list[str] | None = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)

    if args.version:
        print(__version__)
        return 0
    if not args.command:
        ap.print_help()
        return 0

    overrides: dict = {}
    if args.data_dir:
        # tout l'état (cas, évaluations, base, journaux) sous ce dossier
        root = Path(args.data_dir)
        overrides.update(
            data_dir=str(root),
            log_dir=str(root / "logs"),
            cases_dir=str(root / "cases"),
            evaluations_dir=str(root / "evaluations"),
            db_path=str(root / "audit.db"),
        )
    if args.backend:
        overrides["backend"] = args.backend
    s = load_settings(config=args.config, profile=args.profile, overrides=overrides)

    try:
        summary = asyncio.run(_run(AuditService(s), args))
    except (AuditError, ValueError, OSError) as e:
        print(f"ERR: {e}", file=sys.stderr)
        log_event(s, f"{args.command} ERR {type(e).__name__}: {e}")
        return 1
    log_event(s, summary)
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
