"""
Email Service for account verification, password reset and organization invites
"""
import smtplib
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from flask import current_app

logger = logging.getLogger(__name__)

PRODUCT_NAME = 'CogniCare'

HTML_LAYOUT = """
<!DOCTYPE html>
<html>
<head>
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background: #2563eb; color: white; padding: 20px; text-align: center; border-radius: 5px 5px 0 0; }}
        .content {{ background: #f9f9f9; padding: 30px; border: 1px solid #ddd; }}
        .button {{ display: inline-block; background: #2563eb; color: white; padding: 15px 40px; text-decoration: none; border-radius: 5px; margin: 20px 0; font-size: 16px; }}
        .footer {{ text-align: center; padding: 20px; color: #666; font-size: 12px; }}
        .warning {{ background: #fff3cd; padding: 15px; border-radius: 5px; margin-top: 20px; font-size: 13px; }}
        .link-text {{ word-break: break-all; background: #eee; padding: 10px; border-radius: 5px; font-size: 12px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>{title}</h1>
        </div>
        <div class="content">
            <h2>Hello {name},</h2>
            <p>{intro}</p>
            <center>
                <a href="{link}" class="button">{action}</a>
            </center>
            <p>Or copy and paste this link in your browser:</p>
            <p class="link-text">{link}</p>
            <div class="warning">
                <strong>This link will expire in {expiry}.</strong><br>
                If you did not expect this email, you can safely ignore it.
            </div>
        </div>
        <div class="footer">
            <p>{product}</p>
        </div>
    </div>
</body>
</html>
"""


def send_email(to_email, subject, body_text, body_html=None):
    """
    Generic email sending function

    Args:
        to_email: Recipient email
        subject: Email subject
        body_text: Plain text body
        body_html: HTML body (optional)

    Returns:
        bool: True if sent successfully
    """
    try:
        mail_server = current_app.config.get('MAIL_SERVER')
        mail_port = current_app.config.get('MAIL_PORT')
        mail_use_tls = current_app.config.get('MAIL_USE_TLS')
        mail_use_ssl = current_app.config.get('MAIL_USE_SSL')
        mail_username = current_app.config.get('MAIL_USERNAME')
        mail_password = current_app.config.get('MAIL_PASSWORD')
        mail_sender = current_app.config.get('MAIL_DEFAULT_SENDER')

        if not mail_username or not mail_password:
            logger.warning("Email not configured. Skipping '%s' to %s", subject, to_email)
            return False

        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = mail_sender
        msg['To'] = to_email

        msg.attach(MIMEText(body_text, 'plain'))
        if body_html:
            msg.attach(MIMEText(body_html, 'html'))

        smtp_class = smtplib.SMTP_SSL if mail_use_ssl else smtplib.SMTP
        with smtp_class(mail_server, mail_port) as server:
            if mail_use_tls and not mail_use_ssl:
                server.starttls()
            server.login(mail_username, mail_password)
            server.sendmail(mail_sender, to_email, msg.as_string())

        logger.info("Email '%s' sent to %s", subject, to_email)
        return True

    except Exception as e:
        logger.error("Failed to send email to %s: %s", to_email, e)
        return False


def _frontend_link(path, token):
    base = current_app.config.get('FRONTEND_URL', '').rstrip('/')
    return f"{base}/{path}?token={token}"


def _send_link_email(email, subject, name, title, intro, action, link, expiry):
    text = f"""
Hello {name},

{intro}

{action}: {link}

This link will expire in {expiry}.

If you did not expect this email, you can safely ignore it.

{PRODUCT_NAME}
    """
    html = HTML_LAYOUT.format(title=title, name=name, intro=intro, action=action,
                              link=link, expiry=expiry, product=PRODUCT_NAME)
    return send_email(email, subject, text, html)


def send_verification_email(email, name, token):
    """Send the account email verification link (valid 24 hours)."""
    return _send_link_email(
        email,
        subject=f'Verify your email - {PRODUCT_NAME}',
        name=name,
        title='Verify Your Email',
        intro=f'Thanks for signing up for {PRODUCT_NAME}. Please confirm your email address to activate your account.',
        action='Verify Email',
        link=_frontend_link('verify-email', token),
        expiry='24 hours',
    )


def send_password_reset_email(email, name, token):
    """Send password reset link (valid 1 hour)."""
    return _send_link_email(
        email,
        subject=f'Password Reset - {PRODUCT_NAME}',
        name=name,
        title='Password Reset',
        intro=f'You requested to reset your password for {PRODUCT_NAME}.',
        action='Reset Password',
        link=_frontend_link('reset-password', token),
        expiry='1 hour',
    )


def send_invite_email(email, organization_name, inviter_name, role, token):
    """Send an organization invite link (valid 7 days)."""
    return _send_link_email(
        email,
        subject=f"You're invited to join {organization_name} on {PRODUCT_NAME}",
        name=email,
        title='Organization Invite',
        intro=f'{inviter_name} has invited you to join {organization_name} as {role.title()}.',
        action='Accept Invite',
        link=_frontend_link('join', token),
        expiry='7 days',
    )
