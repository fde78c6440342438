"""
oralscreen - Annotate dental photographs and produce screening reports.

This library provides tools to:
- Hold a patient submission of three dental photographs (upper, front, lower teeth)
- Draw labelled shape annotations (rectangle, circle, arrow, freehand) over each photo
- Serialize annotations to a structured shape list and a flattened JPEG
- Collect per-problem treatment recommendations
- Compose a paginated PDF screening report

Usage:
    from oralscreen.config import config
    from oralscreen.annotation.session import AnnotationSession
    from oralscreen.submissions.service import SubmissionService
    from oralscreen.report import compose_report

CLI:
    oralscreen intake "Jane Doe" jane@example.com --upper u.jpg --front f.jpg --lower l.jpg
    oralscreen annotate <id> front_teeth shapes.json
    oralscreen recommend <id> "Stains=Scaling and polishing"
    oralscreen report <id> --output report.pdf
"""

__version__ = "1.0.0"
