import click
from decimal import Decimal
from flask import current_app
from flask.cli import with_appcontext
from wetreat.extensions import db
from wetreat.models.user_models import User, DoctorProfile, ROLE_ADMIN, ROLE_DOCTOR

DEMO_DOCTOR = {
    'email': 'dr.smith@wetreat.com',
    'password': 'doctorpass',
    'profile': {
        'full_name': 'Dr. John Smith',
        'specialty': 'Cardiology',
        'fee_office': Decimal('250.00'),
    },
}


def seed_defaults(with_demo_doctor=True):
    """Creates the administrator and the demo doctor if they are missing."""
    admin_email = current_app.config['ADMIN_EMAIL'].lower()
    if not User.query.filter_by(email=admin_email).first():
        admin = User(email=admin_email, role=ROLE_ADMIN)
        admin.set_password(current_app.config['ADMIN_PASSWORD'])
        db.session.add(admin)
        click.echo('Initial administrator user created.')

    if with_demo_doctor and not User.query.filter_by(email=DEMO_DOCTOR['email']).first():
        doctor = User(email=DEMO_DOCTOR['email'], role=ROLE_DOCTOR)
        doctor.set_password(DEMO_DOCTOR['password'])
        doctor.doctor_profile = DoctorProfile(**DEMO_DOCTOR['profile'])
        db.session.add(doctor)
        click.echo('Demo doctor and profile created.')

    db.session.commit()


@click.command('init-db')
@click.option('--no-demo', is_flag=True, help='Skip the demo doctor account.')
@with_appcontext
def init_db_command(no_demo):
    """Create tables and seed the default accounts."""
    db.create_all()
    seed_defaults(with_demo_doctor=not no_demo)
    click.echo('Database initialized successfully!')


def register_commands(app):
    app.cli.add_command(init_db_command)
