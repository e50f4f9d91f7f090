"""
Email bodies for account notifications.
"""

from dataclasses import dataclass
from html import escape

BRAND = "QuickQuest"

_STYLE = """
body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif; line-height: 1.6; color: #333; }
.container { max-width: 600px; margin: 0 auto; padding: 20px; }
.header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); padding: 30px; text-align: center; border-radius: 10px 10px 0 0; }
.header h1 { color: white; margin: 0; font-size: 28px; }
.content { background: #f8f9fa; padding: 30px; border-radius: 0 0 10px 10px; }
.button { display: inline-block; background: #667eea; color: white !important; padding: 14px 32px; text-decoration: none; border-radius: 6px; font-weight: 600; }
.code { font-size: 32px; font-weight: 700; color: #667eea; letter-spacing: 3px; font-family: 'Courier New', monospace; }
.footer { text-align: center; padding: 20px; color: #666; font-size: 12px; }
"""


@dataclass(frozen=True)
class EmailMessage:
    subject: str
    html: str
    text: str


def _layout(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head><style>{_STYLE}</style></head>
<body>
  <div class="container">
    <div class="header"><h1>{title}</h1></div>
    <div class="content">{body}</div>
    <div class="footer"><p>&copy; {BRAND}. All rights reserved.</p></div>
  </div>
</body>
</html>"""


def verification_email(username: str, verification_url: str) -> EmailMessage:
    name = escape(username)
    url = escape(verification_url, quote=True)
    html = _layout(
        f"Welcome to {BRAND}!",
        f"""<h2>Hi {name},</h2>
<p>Thanks for signing up! Please verify your email address to get started:</p>
<p style="text-align: center;"><a href="{url}" class="button">Verify Email Address</a></p>
<p>Or copy and paste this link into your browser:</p>
<p style="word-break: break-all;"><a href="{url}">{url}</a></p>
<p>This link expires in 24 hours. If you didn't create this account, please ignore this email.</p>""",
    )
    text = (
        f"Hi {username},\n\n"
        f"Thanks for signing up! Verify your email address here:\n{verification_url}\n\n"
        "This link expires in 24 hours. If you didn't create this account, ignore this email."
    )
    return EmailMessage(subject=f"Verify Your {BRAND} Account", html=html, text=text)


def password_reset_email(username: str, code: str) -> EmailMessage:
    name = escape(username)
    html = _layout(
        "Password Reset Request",
        f"""<h2>Hi {name},</h2>
<p>We received a request to reset your password. Use this code to reset it:</p>
<p style="text-align: center;" class="code">{escape(code)}</p>
<p>This code expires in 1 hour. If you didn't request a reset, ignore this email and your password will remain unchanged.</p>""",
    )
    text = (
        f"Hi {username},\n\n"
        f"Your password reset code is: {code}\n\n"
        "This code expires in 1 hour. If you didn't request a reset, ignore this email."
    )
    return EmailMessage(subject=f"Reset Your {BRAND} Password", html=html, text=text)


def welcome_email(username: str, app_url: str) -> EmailMessage:
    name = escape(username)
    url = escape(app_url, quote=True)
    html = _layout(
        "You're All Set!",
        f"""<h2>Hi {name},</h2>
<p>Your email is verified. Welcome to {BRAND}!</p>
<p style="text-align: center;"><a href="{url}" class="button">Get Started</a></p>""",
    )
    text = f"Hi {username},\n\nYour email is verified. Welcome to {BRAND}!\n{app_url}"
    return EmailMessage(subject=f"Welcome to {BRAND}!", html=html, text=text)
