from flask import render_template, flash, redirect, url_for, request
from flask_login import current_user, login_required

from blogora.routes import bp
from blogora.auth_session import current_repository
from blogora.services import (
    PostForm,
    create_post as create_post_service,
    delete_post as delete_post_service,
    get_post,
    is_owner,
    list_posts,
    load_post_for_edit,
    update_post,
)


@bp.route('/')
def index():
    """Newest posts, optionally narrowed by ?q= on title or author."""
    page = request.args.get('page', 1, type=int)
    query = request.args.get('q', '')

    result = list_posts(current_repository(), page=page, query=query)
    if not result.ok:
        flash('Failed to load posts', 'danger')

    return render_template(
        'index.html',
        posts=result.page.items if result.page else [],
        pagination=result.page,
        query=result.query,
    )


@bp.route('/post/<post_id>')
def post_detail(post_id):
    result = get_post(current_repository(), post_id)
    if result.post is None:
        flash('Failed to load post', 'danger')
        return redirect(url_for('routes.index'))

    return render_template(
        'post_detail.html',
        post=result.post,
        is_owner=is_owner(current_user, result.post),
    )


@bp.route('/post/<post_id>/delete', methods=['GET', 'POST'])
@login_required
def delete_post(post_id):
    if request.method == 'GET':
        result = get_post(current_repository(), post_id)
        if result.post is None:
            flash('Failed to load post', 'danger')
            return redirect(url_for('routes.index'))
        if not is_owner(current_user, result.post):
            flash('You can only delete your own posts', 'danger')
            return redirect(url_for('routes.post_detail', post_id=post_id))
        return render_template('confirm_delete.html', post=result.post)

    confirmed = request.form.get('confirm') == 'yes'
    result = delete_post_service(current_repository(), post_id, confirmed=confirmed)

    if result.deleted:
        flash('Post deleted successfully', 'success')
        return redirect(url_for('routes.index'))
    if result.reason == "failed":
        flash('Failed to delete post', 'danger')

    return redirect(url_for('routes.post_detail', post_id=post_id))


@bp.route('/create', methods=['GET', 'POST'])
@login_required
def create_post():
    form = PostForm.from_mapping(request.form)
    errors = {}

    if request.method == 'POST':
        result = create_post_service(
            current_repository(),
            current_user,
            form,
            image_file=request.files.get('image'),
        )
        if result.saved:
            flash('Post created successfully!', 'success')
            return redirect(url_for('routes.post_detail', post_id=result.post_id))
        if result.reason == "failed":
            flash('Failed to create post', 'danger')
        errors = result.errors
        return render_template('post_form.html', form=form, errors=errors, is_edit=False), 400

    return render_template('post_form.html', form=form, errors=errors, is_edit=False)


@bp.route('/edit/<post_id>', methods=['GET', 'POST'])
@login_required
def edit_post(post_id):
    repo = current_repository()

    loaded = load_post_for_edit(repo, current_user, post_id)
    if loaded.reason == "forbidden":
        flash('You can only edit your own posts', 'danger')
        return redirect(url_for('routes.index'))
    if loaded.post is None:
        flash('Failed to load post', 'danger')
        return redirect(url_for('routes.index'))

    if request.method == 'POST':
        form = PostForm.from_mapping(request.form)
        result = update_post(repo, current_user, post_id, form, image_file=request.files.get('image'))
        if result.saved:
            flash('Post updated successfully!', 'success')
            return redirect(url_for('routes.post_detail', post_id=post_id))
        if result.reason == "failed":
            flash('Failed to update post', 'danger')
        return render_template(
            'post_form.html', form=form, errors=result.errors, is_edit=True, post=loaded.post
        ), 400

    return render_template(
        'post_form.html', form=PostForm.from_post(loaded.post), errors={}, is_edit=True, post=loaded.post
    )
