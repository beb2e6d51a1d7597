from storebot.core.config import settings

MESSAGES = {
    "MAIN_MENU": (
        "👋 Selamat datang di *{shop}*!\n\n"
        "Silakan pilih menu:\n"
        "1️⃣ Lihat produk\n"
        "2️⃣ Keranjang belanja\n"
        "3️⃣ Riwayat pesanan\n"
        "4️⃣ Bantuan\n\n"
        "Ketik *menu* kapan saja untuk kembali ke menu utama."
    ),
    "HELP": (
        "ℹ️ *Bantuan*\n\n"
        "• *menu* - kembali ke menu utama\n"
        "• *cart* - lihat keranjang belanja\n"
        "• *clear* - kosongkan keranjang\n"
        "• *promo KODE* - gunakan kode promo\n"
        "• *checkout* - lanjut ke pembayaran\n"
        "• *history* - riwayat pesanan\n"
        "• *status* - cek status pembayaran QRIS\n"
        "• *batal* - batalkan pesanan yang belum dibayar"
    ),
    "PRODUCT_LIST_HEADER": "🛍️ *Daftar Produk*\n",
    "PRODUCT_LIST_FOOTER": (
        "\nKetik nama atau nomor produk untuk menambahkan ke keranjang.\n"
        "Ketik *cart* untuk melihat keranjang."
    ),
    "PRODUCT_ADDED": (
        "✅ *{name}* ditambahkan ke keranjang.\n"
        "Harga: {price}\n"
        "Isi keranjang: {count} item\n\n"
        "Ketik produk lain atau *cart* untuk checkout."
    ),
    "PRODUCT_ADDED_NO_STOCK": "⚠️ Stok *{name}* sedang kosong, pesanan akan diproses setelah stok tersedia.",
    "PRODUCT_NOT_FOUND": "❌ Produk tidak ditemukan. Ketik *menu* lalu *1* untuk melihat daftar produk.",
    "CART_FULL": "⚠️ Keranjang penuh (maksimal {max} item). Silakan checkout terlebih dahulu.",
    "CART_EMPTY": "🛒 Keranjang Anda kosong. Ketik *1* di menu untuk melihat produk.",
    "CART_CLEARED": "🗑️ Keranjang dikosongkan.",
    "CART_HEADER": "🛒 *Keranjang Belanja*\n",
    "CART_FOOTER": (
        "\nKetik *checkout* untuk lanjut ke pembayaran,\n"
        "*promo KODE* untuk memakai kode promo, atau *clear* untuk mengosongkan."
    ),
    "PROMO_APPLIED": "🎉 Kode promo *{code}* berhasil dipakai (diskon {percent}%).",
    "PROMO_INVALID": "❌ {reason}",
    "PROMO_USAGE": "Format: *promo KODE*",
    "PAYMENT_MENU_HEADER": "💳 *Pilih Metode Pembayaran*\nNomor pesanan: *{order_id}*\nTotal: *{total}*\n",
    "PAYMENT_MENU_FOOTER": "\nBalas dengan nomor metode pembayaran.",
    "PAYMENT_NONE_ENABLED": "⚠️ Belum ada metode pembayaran yang aktif. Silakan hubungi admin.",
    "PAYMENT_INVALID_CHOICE": "❌ Pilihan tidak valid. Balas dengan nomor yang tersedia.",
    "BANK_MENU_HEADER": "🏦 *Pilih Bank*\n",
    "QRIS_CREATED": (
        "📱 *Pembayaran QRIS*\n\n"
        "Nomor pesanan: *{order_id}*\n"
        "Total: *{total}*\n\n"
        "Scan QR berikut untuk membayar:\n{qr}\n\n"
        "Ketik *status* untuk mengecek pembayaran."
    ),
    "MANUAL_TRANSFER": (
        "💸 *Transfer {label}*\n\n"
        "Nomor pesanan: *{order_id}*\n"
        "Total: *{total}*\n\n"
        "Nomor: *{number}*\n"
        "Atas nama: *{name}*\n\n"
        "Setelah transfer, kirim foto bukti pembayaran di chat ini."
    ),
    "PAYMENT_PENDING": "⏳ Pembayaran belum diterima. Ketik *status* lagi setelah membayar.",
    "AWAITING_PAYMENT_HINT": "⏳ Menunggu pembayaran QRIS. Ketik *status* untuk mengecek.",
    "AWAITING_APPROVAL_HINT": "⏳ Pesanan *{order_id}* menunggu verifikasi admin. Kirim foto bukti transfer jika belum.",
    "PROOF_RECEIVED": "📸 Bukti pembayaran untuk *{order_id}* diterima. Admin akan segera memverifikasi.",
    "ORDER_PENDING": (
        "⏳ Pesanan *{order_id}* masih menunggu pembayaran atau verifikasi admin.\n\n"
        "Ketik *batal* untuk membatalkan pesanan ini."
    ),
    "ORDER_CANCELLED": (
        "🗑️ Pesanan *{order_id}* dibatalkan. Keranjang Anda tetap tersimpan.\n"
        "Ketik *cart* untuk checkout ulang atau *menu* untuk kembali."
    ),
    "ORDER_CANCEL_LOCKED": (
        "ℹ️ Bukti pembayaran untuk *{order_id}* sudah dikirim, pesanan tidak bisa dibatalkan. "
        "Admin akan segera memverifikasi."
    ),
    "PROOF_NOT_EXPECTED": "ℹ️ Bukti pembayaran hanya diperlukan setelah memilih transfer manual.",
    "UNKNOWN_COMMAND": "❓ Perintah tidak dikenali. Ketik *menu* untuk melihat pilihan atau *help* untuk bantuan.",
    "HISTORY_EMPTY": "📜 Belum ada riwayat pesanan.",
    "HISTORY_HEADER": "📜 *Riwayat Pesanan*\n",
    "DELIVERY": (
        "🎉 *Pembayaran Dikonfirmasi!*\n\n"
        "Nomor pesanan: *{order_id}*\n\n"
        "{items}\n\n"
        "Terima kasih telah berbelanja di *{shop}*!"
    ),
    "UNAUTHORIZED": "❌ Anda tidak memiliki akses ke perintah ini.",
    "SYSTEM_ERROR": "❌ Terjadi kesalahan sistem. Silakan hubungi admin.",
}


def t(key: str, **kwargs) -> str:
    kwargs.setdefault("shop", settings.SHOP_NAME)
    return MESSAGES[key].format(**kwargs)


def format_idr(amount: int) -> str:
    """Format an IDR amount as ``Rp 15.800`` (dot thousands separator)."""
    return "Rp " + f"{int(amount):,}".replace(",", ".")


def to_idr(price: int, rate: int | None = None) -> int:
    return int(price) * (settings.USD_TO_IDR_RATE if rate is None else rate)
