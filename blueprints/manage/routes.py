"""
Reference data management: plazas, generators and user accounts.
Admin only; section access is enforced in the app-level before_request hook.
"""
from flask import render_template, request, redirect, url_for, flash
from flask_login import current_user
from . import manage_bp
from blueprints.auth.forms import CreateUserForm
from models.users import User
from services.errors import ReferenceDataError
from services.reference_service import ReferenceService, get_reference_snapshot
from utils.permissions import roles_required


@manage_bp.route('/locations', methods=['GET', 'POST'])
@roles_required('admin')
def locations():
    if request.method == 'POST':
        try:
            location = ReferenceService.create_location(request.form.get('name'))
            flash(f'Plaza "{location.name}" added', 'success')
        except ReferenceDataError as e:
            flash(str(e), 'danger')
        return redirect(url_for('manage.locations'))

    return render_template('manage/locations.html', locations=ReferenceService.list_locations())


@manage_bp.route('/locations/<int:location_id>/delete', methods=['POST'])
@roles_required('admin')
def delete_location(location_id):
    try:
        ReferenceService.delete_location(location_id)
        flash('Plaza deleted', 'success')
    except ReferenceDataError as e:
        flash(str(e), 'danger')
    return redirect(url_for('manage.locations'))


@manage_bp.route('/generators', methods=['GET', 'POST'])
@roles_required('admin')
def generators():
    if request.method == 'POST':
        try:
            generator = ReferenceService.create_generator(
                request.form.get('location_id', type=int),
                request.form.get('name'),
            )
            flash(f'Generator "{generator.name}" added', 'success')
        except ReferenceDataError as e:
            flash(str(e), 'danger')
        return redirect(url_for('manage.generators'))

    return render_template(
        'manage/generators.html',
        generators=ReferenceService.list_generators(),
        locations=ReferenceService.list_locations(),
        reference=get_reference_snapshot(),
    )


@manage_bp.route('/generators/<int:generator_id>/delete', methods=['POST'])
@roles_required('admin')
def delete_generator(generator_id):
    try:
        ReferenceService.delete_generator(generator_id)
        flash('Generator deleted', 'success')
    except ReferenceDataError as e:
        flash(str(e), 'danger')
    return redirect(url_for('manage.generators'))


@manage_bp.route('/users', methods=['GET', 'POST'])
@roles_required('admin')
def users():
    locations = ReferenceService.list_locations()
    form = CreateUserForm()
    form.location_id.choices = [(0, 'No plaza')] + [(loc.id, loc.name) for loc in locations]

    if form.validate_on_submit():
        try:
            user = ReferenceService.create_user(
                form.email.data,
                form.password.data,
                name=form.name.data,
                role=form.role.data,
                location_id=form.location_id.data or None,
            )
            flash(f'User {user.email} created', 'success')
            return redirect(url_for('manage.users'))
        except ReferenceDataError as e:
            flash(str(e), 'danger')
    elif request.method == 'POST':
        for errors in form.errors.values():
            for error in errors:
                flash(error, 'danger')

    return render_template(
        'manage/users.html',
        form=form,
        users=User.query.order_by(User.email).all(),
        locations=locations,
        reference=get_reference_snapshot(),
    )


@manage_bp.route('/users/<int:user_id>', methods=['POST'])
@roles_required('admin')
def update_user(user_id):
    try:
        user = ReferenceService.update_user(
            user_id,
            role=request.form.get('role') or None,
            location_id=request.form.get('location_id', type=int),
            is_active=request.form.get('is_active') == 'on',
            acting_user=current_user,
        )
        flash(f'User {user.email} updated', 'success')
    except ReferenceDataError as e:
        flash(str(e), 'danger')
    return redirect(url_for('manage.users'))
