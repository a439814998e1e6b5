# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
User-facing Arabic strings shown by the beneficiary portal.
"""

# Validation
INVALID_NATIONAL_ID = "رقم الهوية يجب أن يتكون من 9 أرقام"
INVALID_PIN = "كلمة المرور يجب أن تتكون من 6 أرقام"
PIN_MISMATCH = "كلمة المرور غير متطابقة"
INVALID_OTP_FORMAT = "رمز التحقق يجب أن يتكون من 6 أرقام"

# Authentication
NATIONAL_ID_NOT_FOUND = "رقم الهوية غير موجود"
ACCOUNT_LOCKED = "الحساب مقفل مؤقتاً. يرجى المحاولة بعد {minutes} دقيقة"
ACCOUNT_LOCKED_NOW = "تم قفل الحساب لمدة 30 دقيقة بسبب المحاولات المتكررة الفاشلة"
WRONG_PIN = "كلمة المرور غير صحيحة. المحاولات المتبقية: {remaining}"
OTP_SENT = "تم إرسال رمز التحقق عبر واتساب"
OTP_INVALID = "رمز التحقق غير صحيح أو منتهي الصلاحية"
OTP_DISABLED = "التحقق عبر رمز OTP غير مفعل حالياً"
BENEFICIARY_NOT_REGISTERED = "رقم الهوية غير مسجل. يرجى التواصل مع المؤسسة للتسجيل"
ALREADY_REGISTERED = "تم إنشاء كلمة مرور لهذا الحساب مسبقاً"
PORTAL_DISABLED = "بوابة المستفيدين غير متاحة حالياً"
LOGGED_OUT = "تم تسجيل الخروج بنجاح"

# Password recovery
RECOVERY_DISABLED = "استعادة كلمة المرور غير متاحة حالياً"
RECOVERY_SENT = "تم إرسال كلمة مرور مؤقتة عبر واتساب"
TEMPORARY_PASSWORD_INVALID = "كلمة المرور المؤقتة غير صحيحة أو منتهية الصلاحية"
PASSWORD_RESET_DONE = "تم تغيير كلمة المرور بنجاح"
NO_PHONE_ON_FILE = "لا يوجد رقم هاتف مسجل. يرجى التواصل مع الدعم"

# Public search
PUBLIC_NOT_FOUND = "رقم الهوية غير موجود في قاعدة البيانات"

# Profile
PROFILE_UPDATED = "تم تحديث البيانات بنجاح"
LOCATION_SHARED = "تم مشاركة الموقع بنجاح"
INVALID_PHONE = "رقم الهاتف غير صحيح"

# Support
SUPPORT_REQUEST_TEXT = "مرحباً، أحتاج مساعدة في بوابة المستفيدين"

# Activity log actions
ACTIVITY_LOGIN = "تسجيل دخول ناجح"
ACTIVITY_PIN_CREATED = "إنشاء كلمة مرور جديدة"
ACTIVITY_PROFILE_UPDATED = "تحديث البيانات الشخصية"
ACTIVITY_PASSWORD_RESET = "إعادة تعيين كلمة المرور"
ACTIVITY_LOCATION_SHARED = "مشاركة الموقع: {latitude}, {longitude}"
ACTIVITY_SEARCH = "بحث عن مستفيد برقم هوية: {national_id}"
ACTIVITY_PUBLIC_SEARCH = "بحث عام عن مستفيد برقم هوية: {national_id}"
ACTIVITY_PUBLIC_SEARCH_DETAILS = "بحث عام من الصفحة الرئيسية"
DEFAULT_PUBLIC_ACTOR = "نظام عام"
BENEFICIARY_ROLE = "beneficiary"

# Operator actions
ACTIVITY_FEATURE_UPDATED = "تحديث إعدادات الميزة: {feature_key}"
ACTIVITY_NOTIFICATION_QUEUED = "إضافة إشعار واتساب: {notification_type}"
ACTIVITY_NOTIFICATION_STATUS = "تغيير حالة إشعار واتساب إلى: {status}"
STAFF_ROLE = "staff"
