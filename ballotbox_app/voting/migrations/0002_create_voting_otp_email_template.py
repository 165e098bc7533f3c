from __future__ import annotations

from django.db import migrations


def add_voting_otp_template(apps, schema_editor) -> None:
    EmailTemplate = apps.get_model("post_office", "EmailTemplate")

    html_content = (
        "<p>Hello{% if name %} {{ name }}{% endif %},</p>\n"
        "<p>We received a request to sign in to the election voting page. "
        "Use the code below to continue:</p>\n"
        '<p style="font-family: \'Courier New\', monospace; font-size: 32px; font-weight: 700; '
        'letter-spacing: 8px;">{{ otp }}</p>\n'
        "<p>This code expires in {{ expires_in_minutes }} minutes. "
        "Do not share it with anyone, including election staff.</p>\n"
        "<p>If you did not request this code, you can ignore this email.</p>\n"
        "<p><em>The Election Committee</em></p>\n"
    )
    text_content = (
        "Hello{% if name %} {{ name }}{% endif %},\n\n"
        "We received a request to sign in to the election voting page. "
        "Use the code below to continue:\n\n"
        "{{ otp }}\n\n"
        "This code expires in {{ expires_in_minutes }} minutes. "
        "Do not share it with anyone, including election staff.\n\n"
        "If you did not request this code, you can ignore this email.\n\n"
        "The Election Committee\n"
    )

    EmailTemplate.objects.update_or_create(
        name="voting-otp",
        defaults={
            "description": "One-time sign-in code for online voting",
            "subject": "[PEMIRA] Your sign-in code",
            "html_content": html_content,
            "content": text_content,
        },
    )


def noop_reverse(apps, schema_editor) -> None:
    # Keep templates on rollback to avoid losing admin edits.
    return


class Migration(migrations.Migration):
    dependencies = [
        ("voting", "0001_initial"),
        ("post_office", "0011_models_help_text"),
    ]

    operations = [
        migrations.RunPython(
            add_voting_otp_template,
            reverse_code=noop_reverse,
        ),
    ]
