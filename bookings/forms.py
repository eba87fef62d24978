from django import forms


class BookingOrderForm(forms.Form):
    """Customer and appointment details submitted when creating an order."""

    customer_name = forms.CharField(max_length=128)
    customer_email = forms.EmailField()
    customer_phone = forms.CharField(max_length=20)
    city = forms.CharField(max_length=64)
    problem = forms.CharField(max_length=128)
    circumstances = forms.CharField(max_length=5000)
    appointment_date = forms.DateField(input_formats=["%Y-%m-%d"])
    appointment_time = forms.TimeField(input_formats=["%H:%M", "%H:%M:%S"])

    def clean_customer_phone(self):
        phone = self.cleaned_data["customer_phone"].strip()
        digits = "".join(ch for ch in phone if ch.isdigit())
        if len(digits) < 10:
            raise forms.ValidationError("Enter a valid phone number.")
        return phone
