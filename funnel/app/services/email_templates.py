"""
Lead Funnel Email Templates

Templates are plain dicts with subject, html and text. Placeholders use the
{{name}} form and are filled in by render_template.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import quote

from ..core.config import settings
from ..core.exceptions import ValidationError

NURTURE_TYPES = ("resource-delivery", "social-proof", "booking-reminder", "final-offer")

CAREER_GOAL_LABELS = {
    "data-engineering": "Data Engineering",
    "software-engineering": "Software Engineering",
    "product-management": "Product Management",
    "ai-ml": "AI/ML",
    "other": "Tech Career",
}

WELCOME_HTML = """
<html>
  <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <div style="background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); padding: 30px; text-align: center;">
      <h1 style="color: white; margin: 0;">Welcome to Your Journey!</h1>
    </div>
    <div style="padding: 30px;">
      <h2>Hi {{firstName}},</h2>
      <p>I'm excited you're taking the first step toward accelerating your tech career!</p>
      <p>As promised, here's your personalized career roadmap:</p>
      <div style="background: #f8f9fa; padding: 20px; border-radius: 8px; margin: 20px 0;">
        <h3>Your {{careerGoal}} Roadmap</h3>
        <ul>
          <li>Essential skills to master</li>
          <li>Learning resources and timeline</li>
          <li>Salary expectations and career paths</li>
          <li>Interview preparation guide</li>
        </ul>
      </div>
      <div style="text-align: center; margin: 30px 0;">
        <a href="{{bookingUrl}}" style="background: #28a745; color: white; padding: 15px 30px; text-decoration: none; border-radius: 5px; font-weight: bold;">
          Book Your Free Career Consultation
        </a>
      </div>
      <p>Our career experts have helped 10,000+ professionals land their dream jobs at companies like Google, Microsoft, and Amazon.</p>
      <p>Best regards,<br>The Scaler Career Team</p>
    </div>
    <div style="background: #f8f9fa; padding: 20px; text-align: center; font-size: 12px; color: #666;">
      <p>Scaler Academy | Building the next generation of tech leaders</p>
      <img src="{{trackingPixel}}" width="1" height="1" style="display: none;">
    </div>
  </body>
</html>
"""

WELCOME_TEXT = """
Hi {{firstName}},

Welcome to your tech career journey!

Your personalized {{careerGoal}} roadmap is attached, including:
- Essential skills to master
- Learning timeline and resources
- Salary expectations
- Interview preparation guide

Ready to accelerate your progress? Book a free 30-minute career consultation:
{{bookingUrl}}

Best regards,
The Scaler Career Team
"""

NURTURE_TEMPLATES = {
    "resource-delivery": {
        "subject": "Advanced {{careerGoal}} Resources for {{firstName}}",
        "body": "Hi {{firstName}}, here are some advanced {{careerGoal}} resources to keep your momentum going.",
    },
    "social-proof": {
        "subject": "How {{firstName}} Can Follow in These Footsteps: Success Stories",
        "body": "Hi {{firstName}}, check out these inspiring success stories from people who made the same switch.",
    },
    "booking-reminder": {
        "subject": "{{firstName}}, Your Free Career Consultation is Still Available",
        "body": "Hi {{firstName}}, don't miss your chance to speak with an expert: {{bookingUrl}}",
    },
    "final-offer": {
        "subject": "Last Call: Your Career Breakthrough Awaits, {{firstName}}",
        "body": "Hi {{firstName}}, this is your final opportunity to claim your free consultation: {{bookingUrl}}",
    },
}

TEMPLATE_CATALOG = {
    "welcome": {
        "subject": "Your {{careerGoal}} Roadmap is Here, {{firstName}}!",
        "preview": "Everything you need to start your journey...",
        "content": WELCOME_HTML,
    },
    "nurture_1": {
        "subject": "How {{firstName}} Can Land a $120K+ Data Engineering Role",
        "preview": "Real success stories from our community...",
        "content": NURTURE_TEMPLATES["social-proof"]["body"],
    },
    "nurture_2": {
        "subject": "{{firstName}}, Your Free Career Consultation is Waiting",
        "preview": "Book your slot before they're all taken...",
        "content": NURTURE_TEMPLATES["booking-reminder"]["body"],
    },
    "final_reminder": {
        "subject": "Last chance: Your career breakthrough awaits, {{firstName}}",
        "preview": "Don't let this opportunity slip away...",
        "content": NURTURE_TEMPLATES["final-offer"]["body"],
    },
}


def career_goal_label(lead: Any) -> str:
    return CAREER_GOAL_LABELS.get(lead.career_goal or "", "Career")


def tracking_pixel_url(email: str) -> str:
    return f"{settings.public_base_url}{settings.api_prefix}/email/track-open?email={quote(email)}"


def render_template(content: Optional[str], lead: Any, **extra: str) -> str:
    """Fill {{placeholders}} for one lead"""
    if not content:
        return ""

    values = {
        "firstName": lead.first_name or "",
        "lastName": lead.last_name or "",
        "careerGoal": career_goal_label(lead),
        "bookingUrl": settings.booking_url,
        "trackingPixel": tracking_pixel_url(lead.email),
    }
    values.update(extra)

    for key, value in values.items():
        content = content.replace("{{" + key + "}}", str(value))
    return content


def render_email(template: Dict[str, str], lead: Any, **extra: str) -> Dict[str, str]:
    return {
        "subject": render_template(template.get("subject"), lead, **extra),
        "html": render_template(template.get("html"), lead, **extra),
        "text": render_template(template.get("text"), lead, **extra),
    }


def welcome_email(lead: Any) -> Dict[str, str]:
    return render_email(
        {
            "subject": "Your {{careerGoal}} Roadmap is Here, {{firstName}}!",
            "html": WELCOME_HTML,
            "text": WELCOME_TEXT,
        },
        lead,
    )


def nurture_email(lead: Any, email_type: str) -> Dict[str, str]:
    """Build one of the nurture sequence emails"""
    template = NURTURE_TEMPLATES.get(email_type)
    if template is None:
        raise ValidationError(f"Invalid email type: {email_type}")

    return render_email(
        {
            "subject": template["subject"],
            "html": f"<p>{template['body']}</p>",
            "text": template["body"],
        },
        lead,
    )


def _format_time(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC") if value else "to be confirmed"


def booking_confirmation_email(lead: Any, start_time: Optional[datetime]) -> Dict[str, str]:
    when = _format_time(start_time)
    return render_email(
        {
            "subject": "Your Career Consultation is Confirmed, {{firstName}}!",
            "html": (
                "<h2>Hi {{firstName}},</h2>"
                "<p>Great news! Your free career consultation is confirmed.</p>"
                "<p><strong>Date & Time:</strong> {{when}}</p>"
                "<p><strong>Duration:</strong> 30 minutes</p>"
                "<p>Our expert will help you create a personalized roadmap for your {{careerGoal}} journey.</p>"
            ),
            "text": "Hi {{firstName}}, your career consultation is confirmed for {{when}}.",
        },
        lead,
        when=when,
    )


def reschedule_email(lead: Any, start_time: Optional[datetime], reason: Optional[str] = None) -> Dict[str, str]:
    return render_email(
        {
            "subject": "Your Consultation Has Been Rescheduled, {{firstName}}",
            "html": "<p>Hi {{firstName}}, your consultation now takes place on {{when}}.</p>",
            "text": "Hi {{firstName}}, your consultation now takes place on {{when}}. Reason: {{reason}}",
        },
        lead,
        when=_format_time(start_time),
        reason=reason or "No reason provided",
    )


def cancellation_email(lead: Any, reason: Optional[str] = None) -> Dict[str, str]:
    return render_email(
        {
            "subject": "Your Consultation Was Cancelled, {{firstName}}",
            "html": "<p>Hi {{firstName}}, your consultation was cancelled. Book a new slot any time: {{bookingUrl}}</p>",
            "text": "Hi {{firstName}}, your consultation was cancelled ({{reason}}). Book a new slot: {{bookingUrl}}",
        },
        lead,
        reason=reason or "No reason provided",
    )


def post_call_email(lead: Any, outcome: Optional[str] = None, next_steps: Optional[str] = None) -> Dict[str, str]:
    return render_email(
        {
            "subject": "Thanks for the Call, {{firstName}}!",
            "html": "<p>Hi {{firstName}}, thanks for speaking with us. Next steps: {{nextSteps}}</p>",
            "text": "Hi {{firstName}}, thanks for speaking with us. Next steps: {{nextSteps}}",
        },
        lead,
        outcome=outcome or "",
        nextSteps=next_steps or "our team will be in touch shortly",
    )
