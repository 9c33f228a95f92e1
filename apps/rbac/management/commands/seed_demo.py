"""
Management command to seed demo users, incidents and comments.

Creates a demo environment with:
- One CLIENT_ADMIN, two ANALYSTs and one CLIENT_USER
- Sample incidents across every status
- A few comments on them

Users are created once; incidents are only seeded into an empty table.
"""
from django.core.management.base import BaseCommand
from django.db import transaction

from apps.incidents.models import Comment, Incident, Severity, Status
from apps.rbac.models import User
from apps.rbac.roles import Role


class Command(BaseCommand):
    help = 'Create demo users with sample incidents and comments'

    DEMO_USERS = [
        {'email': 'admin@secops.com', 'password': 'SecurePass123!', 'role': Role.CLIENT_ADMIN},
        {'email': 'analyst@secops.com', 'password': 'AnalystPass123!', 'role': Role.ANALYST},
        {'email': 'user@secops.com', 'password': 'UserPass123!', 'role': Role.CLIENT_USER},
        {'email': 'felipeduarte@secops.com', 'password': 'SecurePass123!', 'role': Role.ANALYST},
    ]

    # (title, description, severity, status, source, creator email)
    DEMO_INCIDENTS = [
        (
            'Suspicious Network Activity Detected',
            'Multiple failed login attempts detected from IP address 192.168.1.100. '
            'Potential brute force attack in progress.',
            Severity.HIGH, Status.OPEN, 'SIEM', 'admin@secops.com',
        ),
        (
            'Malware Detection on Workstation',
            'Antivirus software detected and quarantined malware on workstation WS-001. '
            'User reported suspicious email attachment.',
            Severity.CRITICAL, Status.IN_PROGRESS, 'Endpoint Protection', 'analyst@secops.com',
        ),
        (
            'Unauthorized Access Attempt',
            'Failed authentication attempts to privileged account detected. '
            'Account has been temporarily locked.',
            Severity.MEDIUM, Status.RESOLVED, 'Active Directory', 'user@secops.com',
        ),
        (
            'Data Exfiltration Alert',
            'Unusual data transfer patterns detected. '
            'Large volume of data being transferred to external IP address.',
            Severity.CRITICAL, Status.OPEN, 'DLP System', 'admin@secops.com',
        ),
        (
            'Phishing Email Campaign',
            'Multiple users reported receiving suspicious emails with malicious attachments. '
            'Email security system blocked most attempts.',
            Severity.HIGH, Status.CLOSED, 'Email Security', 'analyst@secops.com',
        ),
    ]

    # (incident index, author email, body)
    DEMO_COMMENTS = [
        (0, 'analyst@secops.com', 'Investigating the source IP. Appears to be from a known botnet.'),
        (0, 'admin@secops.com', 'IP has been blocked at the firewall level. Monitoring for additional attempts.'),
        (1, 'user@secops.com', 'Workstation has been isolated from the network. Running full system scan.'),
        (3, 'analyst@secops.com', 'Data transfer has been blocked. Investigating the compromised account.'),
    ]

    def add_arguments(self, parser):
        parser.add_argument(
            '--users-only',
            action='store_true',
            help='Only create the demo users',
        )

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write('=' * 70)
        self.stdout.write('Seeding demo data')
        self.stdout.write('=' * 70)

        self.stdout.write('\n1. Creating demo users...')
        users = {}
        for user_data in self.DEMO_USERS:
            user = User.objects.by_email(user_data['email'])
            if user is None:
                user = User.objects.create_user(
                    email=user_data['email'],
                    password=user_data['password'],
                    role=user_data['role'],
                )
                self.stdout.write(self.style.SUCCESS(f'   ✓ Created user: {user.email} ({user.role})'))
            else:
                self.stdout.write(self.style.HTTP_INFO(f'     Exists: {user.email}'))
            users[user.email] = user

        if options['users_only']:
            return

        self.stdout.write('\n2. Creating sample incidents...')
        if Incident.objects.exists():
            self.stdout.write(self.style.WARNING('   ↻ Incidents already exist, skipping'))
            return

        incidents = [
            Incident.objects.create(
                title=title,
                description=description,
                severity=severity,
                status=status,
                source=source,
                created_by=users[creator],
            )
            for title, description, severity, status, source, creator in self.DEMO_INCIDENTS
        ]
        self.stdout.write(self.style.SUCCESS(f'   ✓ Created {len(incidents)} incidents'))

        self.stdout.write('\n3. Creating sample comments...')
        for index, author, body in self.DEMO_COMMENTS:
            Comment.objects.create(incident=incidents[index], author=users[author], body=body)
        self.stdout.write(self.style.SUCCESS(f'   ✓ Created {len(self.DEMO_COMMENTS)} comments'))

        self.stdout.write('\n' + '=' * 70)
        self.stdout.write('Demo users:')
        for user_data in self.DEMO_USERS:
            self.stdout.write(f"  {user_data['email']:<28} {user_data['password']:<18} {user_data['role']}")
        self.stdout.write('')
