from django.contrib import admin
from .models import Banner, Campaign, HomepageCollection, HomepageCollectionProduct, BlogPost, BlogCategory


@admin.register(Banner)
class BannerAdmin(admin.ModelAdmin):
    list_display = ['title', 'position', 'enabled', 'sort_order']
    list_filter = ['position', 'enabled']
    search_fields = ['title', 'slug']
    prepopulated_fields = {'slug': ('title',)}


@admin.register(Campaign)
class CampaignAdmin(admin.ModelAdmin):
    list_display = ['name', 'type', 'status', 'coupon_code', 'start_date', 'end_date', 'times_used']
    list_filter = ['type', 'status']
    search_fields = ['name', 'coupon_code']
    readonly_fields = ['times_used']


class HomepageCollectionProductInline(admin.TabularInline):
    model = HomepageCollectionProduct
    extra = 0
    raw_id_fields = ['product']


@admin.register(HomepageCollection)
class HomepageCollectionAdmin(admin.ModelAdmin):
    list_display = ['title', 'enabled', 'sort_order']
    list_filter = ['enabled']
    inlines = [HomepageCollectionProductInline]


class BlogCategoryInline(admin.TabularInline):
    model = BlogCategory
    extra = 0


@admin.register(BlogPost)
class BlogPostAdmin(admin.ModelAdmin):
    list_display = ['title', 'author', 'published', 'published_at']
    list_filter = ['published']
    search_fields = ['title', 'author', 'content']
    readonly_fields = ['published_at']
    inlines = [BlogCategoryInline]
