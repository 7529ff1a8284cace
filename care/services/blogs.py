from typing import Optional

import bleach
from django.db.models import Q
from django.utils.text import slugify
from rest_framework.exceptions import NotFound, ValidationError

from care import repositories
from care.models import BlogPost, CategoryBlog
from care.services.audit import log_action

# markup allowed in post bodies; everything else is stripped
ALLOWED_TAGS = ['p', 'br', 'strong', 'em', 'ul', 'ol', 'li', 'h2', 'h3', 'h4', 'blockquote', 'a', 'img']
ALLOWED_ATTRIBUTES = {'a': ['href', 'title'], 'img': ['src', 'alt']}


def clean_html(value: str) -> str:
    return bleach.clean((value or '').strip(), tags=ALLOWED_TAGS, attributes=ALLOWED_ATTRIBUTES, strip=True)


def clean_text(value: str) -> str:
    return bleach.clean((value or '').strip(), tags=[], strip=True)


def format_category(c: CategoryBlog) -> dict:
    return {
        'id': c.id,
        'title': c.title,
        'description': c.description,
        'isPublished': c.is_published,
    }


def format_post(p: BlogPost) -> dict:
    return {
        'id': p.id,
        'title': p.title,
        'slug': p.slug,
        'content': p.content,
        'imageUrl': p.image_url,
        'isPublished': p.is_published,
        'authorId': p.author_id,
        'authorName': (p.author.get_full_name() or p.author.username) if p.author_id else None,
        'categoryId': p.category_id,
        'categoryTitle': p.category.title if p.category_id else None,
        'createdAt': p.created_at.isoformat() if p.created_at else None,
        'updatedAt': p.updated_at.isoformat() if p.updated_at else None,
    }


def unique_slug(title: str, exclude_pk: Optional[int] = None) -> str:
    base = slugify(title)[:250] or 'post'
    slug, n = base, 2
    qs = BlogPost.objects.all()
    if exclude_pk:
        qs = qs.exclude(pk=exclude_pk)
    while qs.filter(slug=slug).exists():
        slug = f'{base}-{n}'
        n += 1
    return slug


# ---------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------
def get_category(pk: int) -> CategoryBlog:
    category = CategoryBlog.objects.filter(pk=pk).first()
    if category is None:
        raise NotFound(f'Blog category with ID {pk} not found')
    return category


def list_categories(*, published_only: bool = False):
    qs = CategoryBlog.objects.order_by('title')
    if published_only:
        qs = qs.filter(is_published=True)
    return qs


def save_category(data: dict, pk: Optional[int] = None) -> CategoryBlog:
    category = get_category(pk) if pk else CategoryBlog()
    if 'title' in data:
        category.title = clean_text(data['title'])
    if 'description' in data:
        category.description = clean_text(data['description'])
    if 'isPublished' in data:
        category.is_published = data['isPublished']
    if not category.title:
        raise ValidationError('title is required')
    category.save()
    return category


def delete_category(pk: int) -> None:
    get_category(pk).delete()


# ---------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------
def get_post(pk: int, *, published_only: bool = False) -> BlogPost:
    qs = repositories.blog_posts()
    if published_only:
        qs = qs.filter(is_published=True)
    post = qs.filter(pk=pk).first()
    if post is None:
        raise NotFound(f'Blog with ID {pk} not found')
    return post


def list_posts(*, q: Optional[str] = None, category_id: Optional[int] = None, published_only: bool = False):
    qs = repositories.blog_posts().order_by('-created_at')
    if published_only:
        qs = qs.filter(is_published=True)
    if q:
        qs = qs.filter(Q(title__icontains=q) | Q(content__icontains=q))
    if category_id:
        qs = qs.filter(category_id=category_id)
    return qs


def create_post(data: dict, *, author=None) -> BlogPost:
    title = clean_text(data['title'])
    if len(title) < 3:
        raise ValidationError('title must be at least 3 characters')
    category = get_category(data['categoryId']) if data.get('categoryId') else None
    post = BlogPost.objects.create(
        title=title,
        slug=unique_slug(title),
        content=clean_html(data['content']),
        image_url=data.get('imageUrl') or '',
        author=author,
        category=category,
        is_published=data.get('isPublished', False),
    )
    log_action(user=author, action='blog_create', object_type='blog', object_id=post.id)
    return get_post(post.id)


def update_post(pk: int, data: dict, *, actor=None) -> BlogPost:
    post = get_post(pk)
    if 'title' in data:
        title = clean_text(data['title'])
        if len(title) < 3:
            raise ValidationError('title must be at least 3 characters')
        if title != post.title:
            post.title = title
            post.slug = unique_slug(title, exclude_pk=pk)
    if 'content' in data:
        post.content = clean_html(data['content'])
    if 'imageUrl' in data:
        post.image_url = data['imageUrl'] or ''
    if 'isPublished' in data:
        post.is_published = data['isPublished']
    if 'categoryId' in data:
        post.category = get_category(data['categoryId']) if data['categoryId'] else None
    post.save()
    log_action(user=actor, action='blog_update', object_type='blog', object_id=pk)
    return get_post(pk)


def delete_post(pk: int, *, actor=None) -> None:
    get_post(pk).delete()
    log_action(user=actor, action='blog_delete', object_type='blog', object_id=pk)
