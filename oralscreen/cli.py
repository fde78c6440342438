#!/usr/bin/env python3
"""
Command-line interface for oralscreen.

Works against the local filesystem stores under the configured data directory.

Usage:
    oralscreen intake "Jane Doe" jane@example.com --upper u.jpg --front f.jpg --lower l.jpg
    oralscreen list --status annotated
    oralscreen show <id>
    oralscreen annotate <id> front_teeth shapes.json
    oralscreen recommend <id> "Stains=Professional cleaning" "Crowns=Check fit"
    oralscreen report <id> --output report.pdf
    oralscreen preview <id> upper_teeth --output upper.png
    oralscreen config

Available commands:
    intake      - Create a submission from three photos
    list        - List submissions
    show        - Show one submission
    annotate    - Apply a shapes JSON file to an image slot and save
    recommend   - Set treatment recommendations
    report      - Generate the PDF report
    preview     - Write the flattened canvas of an image slot
    config      - Show current configuration
"""

import argparse
import logging
import sys
from pathlib import Path

from oralscreen import __version__
from oralscreen.config import config
from oralscreen.core.constants import IMAGE_SLOTS, SLOT_LABELS
from oralscreen.core.errors import OralScreenError
from oralscreen.core.text import normalize_label


def _service(args):
    from oralscreen.submissions.service import SubmissionService

    return SubmissionService.local(args.data_dir)


def _session(args, slot=IMAGE_SLOTS[0]):
    from oralscreen.annotation.session import AnnotationSession

    return AnnotationSession(_service(args), args.submission_id, slot=slot)


def cmd_intake(args):
    """Create a submission from three photos."""
    paths = {"upper_teeth": args.upper, "front_teeth": args.front, "lower_teeth": args.lower}
    for path in paths.values():
        if not path.exists():
            print(f"Error: File not found: {path}", file=sys.stderr)
            return 1

    submission = _service(args).create_submission(
        args.name,
        args.email,
        {slot: path.read_bytes() for slot, path in paths.items()},
        note=args.note,
    )
    print(submission.id)
    return 0


def cmd_list(args):
    """List submissions."""
    submissions = _service(args).list_submissions(status=args.status)
    if not submissions:
        print("No submissions found.")
        return 0

    print(f"{'ID':34} {'STATUS':10} {'SUBMITTED':17} PATIENT")
    print("-" * 80)
    for s in submissions:
        submitted = s.submitted_at.strftime("%Y-%m-%d %H:%M")
        print(f"{s.id:34} {s.status.value:10} {submitted:17} {s.patient_name} <{s.patient_email}>")
    return 0


def cmd_show(args):
    """Show one submission."""
    submission = _service(args).get_submission(args.submission_id)

    if args.json:
        print(submission.model_dump_json(indent=2))
        return 0

    print(f"Submission {submission.id}")
    print("=" * 50)
    print(f"  Patient: {submission.patient_name} <{submission.patient_email}>")
    print(f"  Status: {submission.status.value}")
    if submission.note:
        print(f"  Note: {submission.note}")
    print()

    for name, slot in submission.slots:
        state = "annotated" if slot.annotated_url else "original"
        print(f"[{SLOT_LABELS[name]}] {len(slot.annotations)} shapes, showing {state}")
        for shape in slot.annotations:
            print(f"  - {shape.kind:9} {shape.problem_label}")
    print()

    print("[Treatment recommendations]")
    if not submission.treatment_recommendations:
        print("  (none)")
    for label, text in submission.treatment_recommendations.items():
        print(f"  {label}: {text or '(empty)'}")

    if submission.report_url:
        print()
        print(f"Report: {submission.report_url}")
    return 0


def cmd_annotate(args):
    """Apply a shapes JSON file to an image slot and save."""
    from oralscreen.annotation.codec import shapes_from_json

    if not args.shapes_file.exists():
        print(f"Error: File not found: {args.shapes_file}", file=sys.stderr)
        return 1
    shapes = shapes_from_json(args.shapes_file.read_text(encoding="utf-8"))

    session = _session(args, slot=args.slot)
    try:
        session.import_shapes(shapes, replace=not args.append)
        result = session.save()
    finally:
        session.close()

    if not result.ok:
        print(f"Error: {result.message}", file=sys.stderr)
        return 1
    print(f"{result.message} ({len(shapes)} shapes, status: {result.value.status.value})")
    return 0


def cmd_recommend(args):
    """Set treatment recommendations."""
    session = _session(args)
    try:
        for item in args.entries:
            label, sep, text = item.partition("=")
            if not sep:
                print(f"Error: Expected LABEL=TEXT, got {item!r}", file=sys.stderr)
                return 1
            if normalize_label(label) not in session.recommendations:
                session.add_custom_label(label)
            result = session.set_recommendation(label, text)
            if not result.ok:
                print(f"Error: {result.message}", file=sys.stderr)
                return 1
        result = session.save_recommendations()
    finally:
        session.close()

    if not result.ok:
        print(f"Error: {result.message}", file=sys.stderr)
        return 1
    for label, text in result.value.treatment_recommendations.items():
        print(f"  {label}: {text}")
    return 0


def cmd_report(args):
    """Generate the PDF report."""
    session = _session(args)
    try:
        result = session.generate_report()
    finally:
        session.close()

    if not result.ok:
        print(f"Error: {result.message}", file=sys.stderr)
        return 1

    print(f"Report: {result.value.report_url}")
    if args.output:
        args.output.write_bytes(_service(args).get_report_bytes(args.submission_id))
        print(f"Wrote {args.output}")
    return 0


def cmd_preview(args):
    """Write the flattened canvas of an image slot."""
    image_format = "JPEG" if args.output.suffix.lower() in (".jpg", ".jpeg") else "PNG"
    session = _session(args, slot=args.slot)
    try:
        result = session.render_preview(image_format=image_format)
    finally:
        session.close()

    args.output.write_bytes(result.value)
    print(f"Wrote {args.output}")
    return 0


def cmd_config(args):
    """Show current configuration."""
    print("oralscreen Configuration")
    print("=" * 50)
    print(f"Config source: {config.config_source}")
    print()

    print("[Paths]")
    print(f"  data_dir: {args.data_dir or config.data_dir}")
    print()

    print("[Export]")
    print(f"  jpeg_quality: {config.jpeg_quality}")
    print()

    print("[Canvas]")
    print(f"  stroke_width: {config.stroke_width}")
    print()

    print("[HTTP]")
    print(f"  timeout: {config.http_timeout}")
    print()

    print("[Logging]")
    print(f"  level: {config.log_level}")
    print()

    print("[Report]")
    print(f"  title: {config.report_title}")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        prog="oralscreen",
        description="Annotate dental screening photos and generate PDF reports",
    )
    parser.add_argument("--version", action="version", version=f"oralscreen {__version__}")
    parser.add_argument("--data-dir", type=Path, default=None, help="Data directory (default: config)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- intake ---
    p_intake = subparsers.add_parser("intake", help="Create a submission from three photos")
    p_intake.add_argument("name", help="Patient name")
    p_intake.add_argument("email", help="Patient email")
    p_intake.add_argument("--upper", type=Path, required=True, help="Upper teeth photo")
    p_intake.add_argument("--front", type=Path, required=True, help="Front teeth photo")
    p_intake.add_argument("--lower", type=Path, required=True, help="Lower teeth photo")
    p_intake.add_argument("--note", default=None, help="Patient note")
    p_intake.set_defaults(func=cmd_intake)

    # --- list ---
    p_list = subparsers.add_parser("list", help="List submissions")
    p_list.add_argument(
        "--status", choices=["all", "uploaded", "annotated", "reported"], default="all",
        help="Filter by status",
    )
    p_list.set_defaults(func=cmd_list)

    # --- show ---
    p_show = subparsers.add_parser("show", help="Show one submission")
    p_show.add_argument("submission_id", help="Submission id")
    p_show.add_argument("--json", action="store_true", help="Print the raw record")
    p_show.set_defaults(func=cmd_show)

    # --- annotate ---
    p_annotate = subparsers.add_parser("annotate", help="Apply shapes to an image slot and save")
    p_annotate.add_argument("submission_id", help="Submission id")
    p_annotate.add_argument("slot", choices=IMAGE_SLOTS, help="Image slot")
    p_annotate.add_argument("shapes_file", type=Path, help="JSON list of shape records")
    p_annotate.add_argument(
        "--append", action="store_true", help="Add to the stored shapes instead of replacing them"
    )
    p_annotate.set_defaults(func=cmd_annotate)

    # --- recommend ---
    p_recommend = subparsers.add_parser("recommend", help="Set treatment recommendations")
    p_recommend.add_argument("submission_id", help="Submission id")
    p_recommend.add_argument("entries", nargs="+", metavar="LABEL=TEXT", help="Recommendation entries")
    p_recommend.set_defaults(func=cmd_recommend)

    # --- report ---
    p_report = subparsers.add_parser("report", help="Generate the PDF report")
    p_report.add_argument("submission_id", help="Submission id")
    p_report.add_argument("-o", "--output", type=Path, default=None, help="Also write the PDF here")
    p_report.set_defaults(func=cmd_report)

    # --- preview ---
    p_preview = subparsers.add_parser("preview", help="Write the flattened canvas of a slot")
    p_preview.add_argument("submission_id", help="Submission id")
    p_preview.add_argument("slot", choices=IMAGE_SLOTS, help="Image slot")
    p_preview.add_argument("-o", "--output", type=Path, required=True, help="Output image (.png or .jpg)")
    p_preview.set_defaults(func=cmd_preview)

    # --- config ---
    p_config = subparsers.add_parser("config", help="Show current configuration")
    p_config.set_defaults(func=cmd_config)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    if args.command is None:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except OralScreenError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
