"""
Interview Dispatch: Output Formatters
Invitation email bodies (plain text + HTML) and console progress/summary lines.
"""
from html import escape


# ============================================================
# Invitation email
# ============================================================

def format_invitation_subject(email) -> str:
    return f"Interview Invitation - {email.round_name} at {email.company}"


def format_invitation_text(email) -> str:
    """Plain-text invitation body."""
    return (
        f"Dear {email.candidate_name},\n"
        f"\n"
        f"You have been invited to attend {email.round_name} for the position at {email.company}.\n"
        f"\n"
        f"Interviewer: {email.interviewer}\n"
        f"Round: {email.round_name}\n"
        f"\n"
        f"Please use the following link to schedule your interview:\n"
        f"{email.round_link}\n"
        f"\n"
        f"If you have any questions, please don't hesitate to reach out.\n"
        f"\n"
        f"Best regards,\n"
        f"{email.company} Recruitment Team\n"
    )


_HTML_STYLE = """
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
    .container { max-width: 600px; margin: 0 auto; padding: 20px; }
    .header { background-color: #4CAF50; color: white; padding: 20px; text-align: center; }
    .content { background-color: #f9f9f9; padding: 20px; border: 1px solid #ddd; }
    .button { display: inline-block; padding: 12px 24px; background-color: #4CAF50; color: white; text-decoration: none; border-radius: 4px; margin: 20px 0; }
    .footer { text-align: center; padding: 20px; font-size: 12px; color: #666; }
"""


def format_invitation_html(email) -> str:
    """HTML invitation body. All interpolated values are escaped."""
    name = escape(email.candidate_name)
    company = escape(email.company)
    interviewer = escape(email.interviewer)
    round_name = escape(email.round_name)
    link = escape(email.round_link, quote=True)

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <style>{_HTML_STYLE}</style>
</head>
<body>
  <div class="container">
    <div class="header">
      <h1>Interview Invitation</h1>
    </div>
    <div class="content">
      <p>Dear <strong>{name}</strong>,</p>
      <p>You have been invited to attend <strong>{round_name}</strong> for the position at <strong>{company}</strong>.</p>
      <p><strong>Interviewer:</strong> {interviewer}</p>
      <p><strong>Round:</strong> {round_name}</p>
      <p>Please click the button below to schedule your interview:</p>
      <p style="text-align: center;">
        <a href="{link}" class="button">Schedule Interview</a>
      </p>
      <p>Or copy this link: <a href="{link}">{link}</a></p>
      <p>If you have any questions, please don't hesitate to reach out.</p>
      <p>Best regards,<br>{company} Recruitment Team</p>
    </div>
    <div class="footer">
      <p>This is an automated message. Please do not reply directly to this email.</p>
    </div>
  </div>
</body>
</html>"""


# ============================================================
# Console output
# ============================================================

_STATUS_LABELS = {
    "sent": "SENT",
    "failed": "FAILED",
    "queued": "QUEUED",
    "skipped": "SKIPPED",
    "already_processed": "SKIPPED",
}


def format_unit_line(result) -> str:
    """One progress line per round unit, e.g. '  SENT: Round 1 (TAT: 3661s)'."""
    outcome = result.outcome
    status = outcome.status
    label = _STATUS_LABELS.get(status, status.upper())
    name = result.round_unit.round_name

    if status == "sent":
        detail = f"email sent (TAT: {outcome.tat_seconds}s)"
        if outcome.note:
            detail += f" [{outcome.note}]"
    elif status == "already_processed":
        detail = f"already processed (record ID: {outcome.record_id})"
    else:
        detail = outcome.reason

    line = f"  {label}: {name}: {detail}"
    if result.unverified_domain:
        line += " (link domain not in allowlist)"
    if status != "already_processed" and not result.persisted:
        line += " [NOT PERSISTED]"
    return line


def format_summary(summary) -> str:
    """Final summary block."""
    average = summary.average_tat
    average_text = f"{round(average)}s" if average is not None else "n/a"
    lines = [
        "=" * 60,
        "PROCESSING SUMMARY",
        "=" * 60,
        f"Total round units:      {summary.total_units}",
        f"Emails sent:            {summary.sent}",
        f"Emails failed:          {summary.failed}",
        f"Emails skipped:         {summary.skipped}",
        f"Emails queued:          {summary.queued}",
        f"Already processed:      {summary.already_processed}",
        f"Rows skipped:           {summary.rows_skipped}",
        f"Unpersisted outcomes:   {summary.persist_failures}",
        f"Average TAT:            {average_text}",
        "=" * 60,
    ]
    return "\n".join(lines)
